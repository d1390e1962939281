"""Estimate the affine transform that aligns one image on top of another."""

import abc
import logging
import math

import numpy as np

from ..affine import AffineTransform2D
from ..errors import ArgumentError, DegenerateResultError
from ..models import AlignmentRequest, AlignmentType, TransformationType
from ..sources import average_pixel_size
from . import ecc_wrapper, providers

log = logging.getLogger(__name__)


def align_rasters(
    rasters: providers.RasterPair,
    initial_transform: AffineTransform2D,
    transformation_type: TransformationType,
) -> AffineTransform2D:
    """Run ECC on a raster pair, working in full resolution coordinates.

    The initial translation is divided by the raster downsample before
    refinement and the refined one multiplied back.
    """
    downsample = rasters.downsample
    initial_mx = initial_transform.matrix[:2]
    initial_mx[:, 2] /= downsample

    mx, _ = ecc_wrapper.find_transform_ecc(
        rasters.base, rasters.to_align, initial_mx, transformation_type
    )
    mx[:, 2] *= downsample
    return AffineTransform2D.from_matrix(mx)


# --- Alignment Strategies ---
class AlignmentStrategy(abc.ABC):
    def __init__(self, request: AlignmentRequest):
        self.request = request

    @abc.abstractmethod
    def align(self) -> AffineTransform2D:
        pass


class RasterAligner(AlignmentStrategy):
    """Shared ECC refinement of the two raster based strategies."""

    def align(self) -> AffineTransform2D:
        downsample = self.request.downsample
        if not (math.isfinite(downsample) and downsample > 0):
            raise ArgumentError(f"Downsample must be positive, got {downsample}")
        rasters = self.read_rasters(downsample)
        return align_rasters(
            rasters, self.request.initial_transform, self.request.transformation_type
        )

    @abc.abstractmethod
    def read_rasters(self, downsample: float) -> providers.RasterPair:
        pass


class IntensityAligner(RasterAligner):
    def read_rasters(self, downsample):
        return providers.RasterPair(
            base=providers.read_grayscale(self.request.base, downsample),
            to_align=providers.read_grayscale(self.request.to_align, downsample),
            downsample=downsample,
        )


class AreaAnnotationAligner(RasterAligner):
    def read_rasters(self, downsample):
        request = self.request
        label_map = providers.build_label_map(
            request.base_annotations, request.to_align_annotations
        )
        log.debug(
            f"{len(label_map)} labels created for {request.base} and "
            f"{request.to_align}: {label_map}"
        )
        return providers.RasterPair(
            base=providers.rasterize_annotations(
                request.base, request.base_annotations, label_map, downsample
            ),
            to_align=providers.rasterize_annotations(
                request.to_align, request.to_align_annotations, label_map, downsample
            ),
            downsample=downsample,
        )


class PointAnnotationAligner(AlignmentStrategy):
    def align(self) -> AffineTransform2D:
        request = self.request
        points = providers.PointCorrespondenceSet.from_annotations(
            request.base_annotations, request.to_align_annotations
        )
        log.debug(
            f"Aligning {len(points)} point pairs with "
            f"{request.transformation_type.name} transformation"
        )
        mx = ecc_wrapper.estimate_from_points(
            points.base, points.to_align, request.transformation_type
        )
        transform = AffineTransform2D.from_matrix(mx)
        if not transform.is_invertible:
            raise DegenerateResultError(
                f"Estimated transformation {transform} is singular"
            )
        return transform


STRATEGIES = {
    AlignmentType.INTENSITY: IntensityAligner,
    AlignmentType.AREA_ANNOTATIONS: AreaAnnotationAligner,
    AlignmentType.POINT_ANNOTATIONS: PointAnnotationAligner,
}


def estimate(request: AlignmentRequest) -> AffineTransform2D:
    """Find the transform mapping ``request.base`` coordinates onto
    ``request.to_align`` coordinates.

    Raises ``ArgumentError`` for unusable inputs, ``ConvergenceError`` when
    ECC does not converge and ``DegenerateResultError`` when a landmark fit
    is unusable. Inputs are not modified.
    """
    log.debug(
        f"Image alignment of {request.to_align} on {request.base} using "
        f"{request.alignment_type.name.lower()}"
    )
    strategy = STRATEGIES[request.alignment_type](request)
    transform = strategy.align()
    log.debug(f"Transformation result of aligning {request.to_align}: {transform}")
    return transform


def downsample_for_pixel_size(requested_pixel_size: float, source) -> float:
    """Downsample at which ``source`` has ``requested_pixel_size``.

    A request of 0 or less means full resolution.
    """
    if requested_pixel_size is None or requested_pixel_size <= 0:
        return 1.0
    base_pixel_size = average_pixel_size(source)
    if base_pixel_size is None or not np.isfinite(base_pixel_size):
        raise ArgumentError(
            f"Cannot align at pixel size {requested_pixel_size}: "
            f"{source} has no pixel size"
        )
    return requested_pixel_size / base_pixel_size
