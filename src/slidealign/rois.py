"""ROI geometry and functions for mapping ROI points."""

import dataclasses
from typing import Tuple, Union

import numpy as np
import skimage.measure

from .affine import AffineTransform2D
from .config import ELLIPSE_VERTICES, ROI_SIMPLIFY_TOLERANCE

Vertices = Tuple[Tuple[float, float], ...]


def _as_vertices(coords) -> Vertices:
    arr = np.asarray(coords, dtype="float64").reshape(-1, 2)
    return tuple((float(x), float(y)) for x, y in arr)


@dataclasses.dataclass(frozen=True)
class Points:
    """One or more landmark points."""

    points: Vertices

    def __post_init__(self):
        object.__setattr__(self, "points", _as_vertices(self.points))
        if not self.points:
            raise ValueError("Points ROI needs at least one point")


@dataclasses.dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float


@dataclasses.dataclass(frozen=True)
class Polyline:
    points: Vertices

    def __post_init__(self):
        object.__setattr__(self, "points", _as_vertices(self.points))


@dataclasses.dataclass(frozen=True)
class Polygon:
    points: Vertices

    def __post_init__(self):
        object.__setattr__(self, "points", _as_vertices(self.points))


@dataclasses.dataclass(frozen=True)
class Rectangle:
    x: float
    y: float
    width: float
    height: float


@dataclasses.dataclass(frozen=True)
class Ellipse:
    """Axis-aligned ellipse given by its center and radii."""

    x: float
    y: float
    x_rad: float
    y_rad: float


ROI = Union[Points, Line, Polyline, Polygon, Rectangle, Ellipse]
ROI_CLASSES = (Points, Line, Polyline, Polygon, Rectangle, Ellipse)
AREA_CLASSES = (Polygon, Rectangle, Ellipse)


def is_area(roi: ROI) -> bool:
    return isinstance(roi, AREA_CLASSES)


def is_point(roi: ROI) -> bool:
    return isinstance(roi, Points)


def simplify_ellipse(x_center, y_center, x_rad, y_rad, n=ELLIPSE_VERTICES):
    t = np.linspace(0, 2 * np.pi, n, endpoint=False)
    x = x_rad * np.cos(t) + x_center
    y = y_rad * np.sin(t) + y_center
    return np.array([x, y]).T


def get_roi_points(roi: ROI) -> np.ndarray:
    """Vertices of ``roi`` as an Nx2 array; area ROIs give their outline."""
    if not isinstance(roi, ROI_CLASSES):
        raise TypeError(f"Unsupported ROI type: {type(roi).__name__}")

    if isinstance(roi, Ellipse):
        return simplify_ellipse(roi.x, roi.y, roi.x_rad, roi.y_rad)
    if isinstance(roi, Line):
        return np.array([[roi.x1, roi.y1], [roi.x2, roi.y2]], dtype="float64")
    if isinstance(roi, Rectangle):
        return np.array(
            [
                [roi.x, roi.y],
                [roi.x + roi.width, roi.y],
                [roi.x + roi.width, roi.y + roi.height],
                [roi.x, roi.y + roi.height],
            ],
            dtype="float64",
        )
    return np.array(roi.points, dtype="float64").reshape(-1, 2)


def set_roi_points(roi: ROI, coords) -> ROI:
    """Rebuild ``roi`` from new vertices; rectangles and ellipses become polygons."""
    if not isinstance(roi, ROI_CLASSES):
        raise TypeError(f"Unsupported ROI type: {type(roi).__name__}")

    if isinstance(roi, (Ellipse, Rectangle)):
        return Polygon(points=coords)
    if isinstance(roi, Line):
        [(x1, y1), (x2, y2)] = np.asarray(coords, dtype="float64").tolist()
        return dataclasses.replace(roi, x1=x1, y1=y1, x2=x2, y2=y2)
    return dataclasses.replace(roi, points=coords)


def simplify_outline(coords, closed: bool, tolerance=ROI_SIMPLIFY_TOLERANCE):
    """Douglas-Peucker simplification of an open or closed outline."""
    coords = np.asarray(coords, dtype="float64")
    if len(coords) < 3:
        return coords
    if closed:
        ring = np.vstack([coords, coords[:1]])
        simplified = skimage.measure.approximate_polygon(ring, tolerance)[:-1]
        # a degenerate ring can collapse below a triangle
        return simplified if len(simplified) >= 3 else coords
    return skimage.measure.approximate_polygon(coords, tolerance)


def map_roi(
    roi: ROI, transform: AffineTransform2D, tolerance=ROI_SIMPLIFY_TOLERANCE
) -> ROI:
    """Map ``roi`` through ``transform``.

    Point ROIs keep their vertex count and order. Other ROIs are mapped
    through their outline and simplified with ``tolerance`` to bound the
    vertices added by the mapping.
    """
    coords = transform.transform_points(get_roi_points(roi))
    if is_point(roi):
        return set_roi_points(roi, coords)
    outline = simplify_outline(coords, closed=is_area(roi), tolerance=tolerance)
    return set_roi_points(roi, outline)
