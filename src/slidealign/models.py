"""Core data structures for slidealign."""

import dataclasses
import enum
from typing import Hashable, Optional, Sequence

import numpy as np

from .affine import AffineTransform2D
from .errors import ArgumentError
from .rois import ROI


class _ParsableEnum(enum.Enum):
    @classmethod
    def parse(cls, value):
        """Accept a member, or its name in any case (``"point-annotations"`` too)."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            choices = ", ".join(mm.name.lower() for mm in cls)
            raise ArgumentError(
                f"Unknown {cls.__name__} {value!r}; expected one of {choices}"
            ) from None


class AlignmentType(_ParsableEnum):
    """What the estimator looks at on both images."""

    INTENSITY = "intensity"
    AREA_ANNOTATIONS = "area_annotations"
    POINT_ANNOTATIONS = "point_annotations"


class TransformationType(_ParsableEnum):
    """Which transforms the estimator may return.

    ``RIGID`` is rotation and translation for raster strategies, plus
    uniform scaling for point annotations.
    """

    AFFINE = "affine"
    RIGID = "rigid"


@dataclasses.dataclass(frozen=True)
class Annotation:
    """A ROI with an optional classification (``None`` is unclassified)."""

    roi: ROI
    classification: Optional[Hashable] = None


@dataclasses.dataclass
class AlignmentRequest:
    """Inputs of a single call to :func:`slidealign.align.estimator.estimate`."""

    base: object
    to_align: object
    alignment_type: AlignmentType = AlignmentType.INTENSITY
    transformation_type: TransformationType = TransformationType.AFFINE
    downsample: float = 1.0
    initial_transform: Optional[AffineTransform2D] = None
    base_annotations: Sequence[Annotation] = ()
    to_align_annotations: Sequence[Annotation] = ()

    def __post_init__(self):
        self.alignment_type = AlignmentType.parse(self.alignment_type)
        self.transformation_type = TransformationType.parse(self.transformation_type)
        if self.initial_transform is None:
            self.initial_transform = AffineTransform2D.identity()


@dataclasses.dataclass
class AlignmentTask:
    """Parameters for a single command line alignment task."""

    base_path: str
    to_align_path: str
    alignment_type: str = "intensity"
    transformation_type: str = "affine"
    downsample: float = 1.0
    pixel_size: Optional[float] = None
    base_annotations: Optional[str] = None
    to_align_annotations: Optional[str] = None
    base_pixel_size: Optional[float] = None
    to_align_pixel_size: Optional[float] = None
    initial_transform: Optional[str] = None
    output: Optional[str] = None
    map_annotations_out: Optional[str] = None
    row_num: Optional[int] = None  # For batch mode context


@dataclasses.dataclass
class AlignmentResult:
    """Result of a single command line alignment task."""

    base_path: str
    to_align_path: str
    success: bool
    message: str
    affine_matrix: Optional[np.ndarray] = None
    rois_mapped: Optional[int] = None
    row_num: Optional[int] = None
