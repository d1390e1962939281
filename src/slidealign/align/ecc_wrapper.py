"""Wraps OpenCV's ECC and landmark estimators."""

import logging

import cv2
import numpy as np

from ..config import (
    ECC_EPSILON,
    ECC_GAUSS_FILTER_SIZE,
    ECC_MAX_COUNT,
    ECC_STOP_ON_EPSILON,
)
from ..errors import ArgumentError, ConvergenceError, DegenerateResultError
from ..models import TransformationType

log = logging.getLogger(__name__)

MOTION_TYPES = {
    TransformationType.AFFINE: cv2.MOTION_AFFINE,
    TransformationType.RIGID: cv2.MOTION_EUCLIDEAN,
}


def find_transform_ecc(
    ref: np.ndarray,
    moving: np.ndarray,
    initial_mx: np.ndarray,
    transformation_type: TransformationType,
    max_count: int = ECC_MAX_COUNT,
    epsilon: float = ECC_EPSILON,
    gauss_filter_size: int = ECC_GAUSS_FILTER_SIZE,
    stop_on_epsilon: bool = ECC_STOP_ON_EPSILON,
):
    """Refine ``initial_mx`` by maximizing ECC between ``ref`` and warped ``moving``.

    The 2x3 matrix maps ``ref`` pixel coordinates to ``moving`` pixel
    coordinates. Returns the refined matrix and the final correlation
    coefficient. Without ``stop_on_epsilon`` all ``max_count`` iterations run.
    """
    if ref.ndim != 2 or moving.ndim != 2:
        raise ArgumentError(
            f"ECC needs single channel rasters, got {ref.shape} and {moving.shape}"
        )
    warp = np.array(initial_mx, dtype="float32").reshape(2, 3)
    criteria_type = cv2.TERM_CRITERIA_COUNT
    if stop_on_epsilon:
        criteria_type |= cv2.TERM_CRITERIA_EPS
    criteria = (
        criteria_type,
        max_count,
        epsilon,
    )
    motion_type = MOTION_TYPES[transformation_type]
    log.debug(
        f"Running ECC ({transformation_type.name}, max {max_count} iterations, "
        f"eps {epsilon}) on rasters {ref.shape} and {moving.shape}"
    )
    try:
        cc, warp = cv2.findTransformECC(
            np.ascontiguousarray(ref, dtype="float32"),
            np.ascontiguousarray(moving, dtype="float32"),
            warp,
            motion_type,
            criteria,
            None,
            gauss_filter_size,
        )
    except cv2.error as e:
        raise ConvergenceError(f"ECC alignment did not converge: {e}") from e

    if not np.all(np.isfinite(warp)):
        raise ConvergenceError(f"ECC alignment returned a non-finite matrix:\n{warp}")
    log.debug(f"ECC correlation coefficient: {cc:.6f}")
    return warp.astype("float64"), cc


def estimate_from_points(
    ref_points: np.ndarray,
    moving_points: np.ndarray,
    transformation_type: TransformationType,
) -> np.ndarray:
    """Least-squares 2x3 matrix mapping ``ref_points`` onto ``moving_points``.

    ``AFFINE`` fits all six parameters; ``RIGID`` fits rotation,
    translation and uniform scale.
    """
    ref = np.asarray(ref_points, dtype="float32").reshape(-1, 1, 2)
    moving = np.asarray(moving_points, dtype="float32").reshape(-1, 1, 2)
    if transformation_type is TransformationType.AFFINE:
        estimator = cv2.estimateAffine2D
    else:
        estimator = cv2.estimateAffinePartial2D
    try:
        mx, inliers = estimator(ref, moving)
    except cv2.error as e:
        raise DegenerateResultError(
            f"Failed to estimate the transformation: {e}"
        ) from e

    if mx is None:
        raise DegenerateResultError("Failed to estimate the transformation.")
    if not np.all(np.isfinite(mx)):
        raise DegenerateResultError(
            f"Estimated transformation is not finite:\n{mx}"
        )
    if inliers is not None:
        log.debug(f"{int(np.sum(inliers))} of {len(ref)} point pairs used as inliers")
    return np.asarray(mx, dtype="float64")
