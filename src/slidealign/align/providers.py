"""Turn image sources and annotations into estimator inputs."""

import dataclasses
import logging
from typing import Dict, Hashable, Iterable, Optional, Sequence

import cv2
import numpy as np
import skimage.color
import skimage.exposure
import skimage.util

from .. import rois
from ..errors import ArgumentError
from ..models import Annotation
from ..sources import downsampled_shape

log = logging.getLogger(__name__)

# sub-pixel bits used when filling polygons
_FILL_SHIFT = 4


@dataclasses.dataclass
class RasterPair:
    """Base and to-align rasters read at the same downsample."""

    base: np.ndarray
    to_align: np.ndarray
    downsample: float


@dataclasses.dataclass
class PointCorrespondenceSet:
    """Ordered landmark lists; the i-th points of both sets correspond."""

    base: np.ndarray
    to_align: np.ndarray

    @classmethod
    def from_annotations(
        cls,
        base_annotations: Iterable[Annotation],
        to_align_annotations: Iterable[Annotation],
    ) -> "PointCorrespondenceSet":
        base = collect_points(base_annotations)
        to_align = collect_points(to_align_annotations)
        if len(base) == 0 and len(to_align) == 0:
            raise ArgumentError("No points found for either image")
        if len(base) != len(to_align):
            raise ArgumentError(
                "Images have different numbers of annotated points "
                f"({len(base)} & {len(to_align)})"
            )
        return cls(base=base, to_align=to_align)

    def __len__(self):
        return len(self.base)


def to_gray_uint8(img) -> np.ndarray:
    """Render an image as single channel 8-bit grayscale."""
    img = np.asarray(img)
    if img.ndim == 3:
        if img.shape[2] == 1:
            img = img[..., 0]
        else:
            # drop alpha
            img = skimage.util.img_as_ubyte(skimage.color.rgb2gray(img[..., :3]))
    if img.dtype == np.uint8:
        return img
    if img.dtype == bool:
        return img.astype("uint8") * 255
    return skimage.exposure.rescale_intensity(img, out_range="uint8").astype("uint8")


def read_grayscale(source, downsample: float) -> np.ndarray:
    """Full extent of ``source`` at ``downsample`` as float32 grayscale."""
    img = source.read_region(downsample, 0, 0, source.width, source.height)
    return to_gray_uint8(img).astype("float32")


def build_label_map(
    base_annotations: Iterable[Annotation],
    to_align_annotations: Iterable[Annotation],
) -> Dict[Optional[Hashable], int]:
    """Shared classification -> label mapping for both images.

    0 is the background. ``None`` (no classification) is 1, and
    classifications of area annotations get consecutive labels from 2 in
    order of first appearance, base image first.
    """
    labels: Dict[Optional[Hashable], int] = {None: 1}
    for annotations in (base_annotations, to_align_annotations):
        for annotation in annotations:
            if not rois.is_area(annotation.roi):
                continue
            if annotation.classification not in labels:
                labels[annotation.classification] = len(labels) + 1
    return labels


def rasterize_annotations(
    source,
    annotations: Sequence[Annotation],
    label_map: Dict[Optional[Hashable], int],
    downsample: float,
) -> np.ndarray:
    """Paint area annotations of ``source`` into a label raster at ``downsample``.

    Later annotations are painted over earlier ones. Pixels not covered by
    any area annotation are 0.
    """
    shape = downsampled_shape(source.width, source.height, downsample)
    label_img = np.zeros(shape, dtype="float32")
    for annotation in annotations:
        if not rois.is_area(annotation.roi):
            continue
        label = label_map[annotation.classification]
        coords = rois.get_roi_points(annotation.roi) / downsample
        pts = np.round(coords * (1 << _FILL_SHIFT)).astype("int32")
        cv2.fillPoly(label_img, [pts], color=float(label), shift=_FILL_SHIFT)
    return label_img


def collect_points(annotations: Iterable[Annotation]) -> np.ndarray:
    """All vertices of non-area annotations, in annotation order, as Nx2."""
    coords = [
        rois.get_roi_points(annotation.roi)
        for annotation in annotations
        if not rois.is_area(annotation.roi)
    ]
    if not coords:
        return np.zeros((0, 2), dtype="float64")
    return np.vstack(coords)
