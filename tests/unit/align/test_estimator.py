# tests/unit/align/test_estimator.py
"""Tests for the alignment estimator."""

import math

import cv2
import numpy as np
import pytest

from slidealign import rois
from slidealign.affine import AffineTransform2D
from slidealign.align import estimate, downsample_for_pixel_size
from slidealign.errors import ArgumentError, ConvergenceError, DegenerateResultError
from slidealign.models import (
    AlignmentRequest,
    AlignmentType,
    Annotation,
    TransformationType,
)

POINTS = [(3.5, 6.78), (10, 0.1), (46, 8.4), (78, 80)]


def _assert_translation(transform, shift, tolerance):
    tx, ty = transform.translation
    assert tx == pytest.approx(shift, abs=tolerance)
    assert ty == pytest.approx(shift, abs=tolerance)
    np.testing.assert_allclose(transform.matrix[:2, :2], np.eye(2), atol=1e-2)


def _rectangle(width, height, shift=0, classification="tumor"):
    return Annotation(
        rois.Rectangle(width / 4 + shift, height / 4 + shift, width / 2, height / 2),
        classification,
    )


class TestIntensity:
    """ECC alignment on image intensities."""

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_same_image(self, shifted_sources, transformation_type):
        base, to_align = shifted_sources(500, 500, 0)

        transform = estimate(
            AlignmentRequest(
                base, to_align, AlignmentType.INTENSITY, transformation_type
            )
        )

        _assert_translation(transform, 0, 1e-3)

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_small_shift(self, shifted_sources, transformation_type):
        base, to_align = shifted_sources(500, 500, 3)

        transform = estimate(
            AlignmentRequest(
                base, to_align, AlignmentType.INTENSITY, transformation_type
            )
        )

        _assert_translation(transform, 3, 0.2)

    def test_large_shift_with_initial_transform(self, shifted_sources):
        base, to_align = shifted_sources(500, 500, 20)

        transform = estimate(
            AlignmentRequest(
                base,
                to_align,
                AlignmentType.INTENSITY,
                TransformationType.AFFINE,
                initial_transform=AffineTransform2D.from_translation(19, 19),
            )
        )

        _assert_translation(transform, 20, 0.2)

    def test_downsampled(self, shifted_sources):
        base, to_align = shifted_sources(2000, 2000, 1)

        transform = estimate(
            AlignmentRequest(
                base,
                to_align,
                AlignmentType.INTENSITY,
                TransformationType.AFFINE,
                downsample=2,
            )
        )

        _assert_translation(transform, 1, 0.5)

    def test_initial_transform_is_not_modified(self, shifted_sources):
        base, to_align = shifted_sources(500, 500, 3)
        initial = AffineTransform2D.from_translation(2, 2)

        estimate(
            AlignmentRequest(
                base,
                to_align,
                AlignmentType.INTENSITY,
                TransformationType.AFFINE,
                downsample=2,
                initial_transform=initial,
            )
        )

        assert initial == AffineTransform2D.from_translation(2, 2)

    @pytest.mark.parametrize("downsample", [0, -1, math.nan, math.inf])
    def test_bad_downsample(self, shifted_sources, downsample):
        base, to_align = shifted_sources(50, 50, 0)

        with pytest.raises(ArgumentError):
            estimate(
                AlignmentRequest(
                    base, to_align, AlignmentType.INTENSITY, downsample=downsample
                )
            )

    def test_no_convergence(self, shifted_sources, monkeypatch):
        def _fail(*args, **kwargs):
            raise cv2.error("The algorithm stopped before its convergence")

        monkeypatch.setattr(cv2, "findTransformECC", _fail)
        base, to_align = shifted_sources(50, 50, 0)

        with pytest.raises(ConvergenceError):
            estimate(AlignmentRequest(base, to_align, AlignmentType.INTENSITY))

    def test_non_finite_result(self, shifted_sources, monkeypatch):
        def _nan(template, input_image, warp, *args):
            return 1.0, np.full((2, 3), np.nan, dtype="float32")

        monkeypatch.setattr(cv2, "findTransformECC", _nan)
        base, to_align = shifted_sources(50, 50, 0)

        with pytest.raises(ConvergenceError):
            estimate(AlignmentRequest(base, to_align, AlignmentType.INTENSITY))


class TestAreaAnnotations:
    """ECC alignment on rasterized area annotations."""

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    @pytest.mark.parametrize("shift,tolerance", [(0, 1e-3), (3, 0.1), (20, 0.1)])
    def test_shifted_rectangle(
        self, blank_source, make_source, shift, tolerance, transformation_type
    ):
        to_align = make_source(np.zeros((500, 500), dtype="uint8"))

        transform = estimate(
            AlignmentRequest(
                blank_source,
                to_align,
                AlignmentType.AREA_ANNOTATIONS,
                transformation_type,
                base_annotations=[_rectangle(500, 500)],
                to_align_annotations=[_rectangle(500, 500, shift)],
            )
        )

        _assert_translation(transform, shift, tolerance)

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_large_shift_with_initial_transform(
        self, blank_source, make_source, transformation_type
    ):
        to_align = make_source(np.zeros((500, 500), dtype="uint8"))

        transform = estimate(
            AlignmentRequest(
                blank_source,
                to_align,
                AlignmentType.AREA_ANNOTATIONS,
                transformation_type,
                initial_transform=AffineTransform2D.from_translation(19, 19),
                base_annotations=[_rectangle(500, 500)],
                to_align_annotations=[_rectangle(500, 500, 20)],
            )
        )

        _assert_translation(transform, 20, 0.1)

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_unclassified_rectangle(
        self, blank_source, make_source, transformation_type
    ):
        to_align = make_source(np.zeros((500, 500), dtype="uint8"))

        transform = estimate(
            AlignmentRequest(
                blank_source,
                to_align,
                AlignmentType.AREA_ANNOTATIONS,
                transformation_type,
                base_annotations=[_rectangle(500, 500, classification=None)],
                to_align_annotations=[_rectangle(500, 500, 3, classification=None)],
            )
        )

        _assert_translation(transform, 3, 0.1)

    def test_downsampled(self, make_source):
        base = make_source(np.zeros((2000, 2000), dtype="uint8"))
        to_align = make_source(np.zeros((2000, 2000), dtype="uint8"))

        transform = estimate(
            AlignmentRequest(
                base,
                to_align,
                AlignmentType.AREA_ANNOTATIONS,
                TransformationType.AFFINE,
                downsample=2,
                base_annotations=[_rectangle(2000, 2000)],
                to_align_annotations=[_rectangle(2000, 2000, 10)],
            )
        )

        _assert_translation(transform, 10, 0.1)


class TestPointAnnotations:
    """Least-squares alignment on corresponding points."""

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_same_points(self, blank_source, transformation_type):
        points = Annotation(rois.Points(points=POINTS))

        transform = estimate(
            AlignmentRequest(
                blank_source,
                blank_source,
                AlignmentType.POINT_ANNOTATIONS,
                transformation_type,
                base_annotations=[points],
                to_align_annotations=[points],
            )
        )

        assert transform.almost_equals(AffineTransform2D.identity(), 1e-6)

    @pytest.mark.parametrize(
        "transformation_type", [TransformationType.AFFINE, TransformationType.RIGID]
    )
    def test_shifted_points(self, blank_source, transformation_type):
        shifted = [(x + 20, y + 20) for x, y in POINTS]

        transform = estimate(
            AlignmentRequest(
                blank_source,
                blank_source,
                AlignmentType.POINT_ANNOTATIONS,
                transformation_type,
                base_annotations=[Annotation(rois.Points(points=POINTS))],
                to_align_annotations=[Annotation(rois.Points(points=shifted))],
            )
        )

        assert transform.almost_equals(
            AffineTransform2D.from_translation(20, 20), 1e-3
        )

    def test_downsample_is_ignored(self, blank_source):
        points = Annotation(rois.Points(points=POINTS))

        transform = estimate(
            AlignmentRequest(
                blank_source,
                blank_source,
                AlignmentType.POINT_ANNOTATIONS,
                downsample=0,
                base_annotations=[points],
                to_align_annotations=[points],
            )
        )

        assert transform.almost_equals(AffineTransform2D.identity(), 1e-6)

    def test_different_numbers_of_points(self, blank_source):
        with pytest.raises(ArgumentError, match="different numbers"):
            estimate(
                AlignmentRequest(
                    blank_source,
                    blank_source,
                    AlignmentType.POINT_ANNOTATIONS,
                    base_annotations=[Annotation(rois.Points(points=POINTS))],
                    to_align_annotations=[Annotation(rois.Points(points=POINTS[:3]))],
                )
            )

    def test_no_points(self, blank_source):
        with pytest.raises(ArgumentError, match="No points"):
            estimate(
                AlignmentRequest(
                    blank_source, blank_source, AlignmentType.POINT_ANNOTATIONS
                )
            )

    def test_failed_fit(self, blank_source, monkeypatch):
        monkeypatch.setattr(cv2, "estimateAffine2D", lambda *a, **k: (None, None))
        points = Annotation(rois.Points(points=POINTS))

        with pytest.raises(DegenerateResultError):
            estimate(
                AlignmentRequest(
                    blank_source,
                    blank_source,
                    AlignmentType.POINT_ANNOTATIONS,
                    base_annotations=[points],
                    to_align_annotations=[points],
                )
            )

    def test_singular_fit(self, blank_source, monkeypatch):
        monkeypatch.setattr(
            cv2, "estimateAffine2D", lambda *a, **k: (np.zeros((2, 3)), None)
        )
        points = Annotation(rois.Points(points=POINTS))

        with pytest.raises(DegenerateResultError, match="singular"):
            estimate(
                AlignmentRequest(
                    blank_source,
                    blank_source,
                    AlignmentType.POINT_ANNOTATIONS,
                    base_annotations=[points],
                    to_align_annotations=[points],
                )
            )


class TestDownsampleForPixelSize:
    def test_calibrated(self, make_source):
        source = make_source(np.zeros((10, 10)), pixel_size=(0.4, 0.6))

        assert downsample_for_pixel_size(2.0, source) == pytest.approx(4.0)

    @pytest.mark.parametrize("requested", [0, -3])
    def test_full_resolution(self, make_source, requested):
        source = make_source(np.zeros((10, 10)))

        assert downsample_for_pixel_size(requested, source) == 1.0

    def test_uncalibrated(self, make_source):
        source = make_source(np.zeros((10, 10)))

        with pytest.raises(ArgumentError):
            downsample_for_pixel_size(2.0, source)
