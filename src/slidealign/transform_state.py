"""Observable affine transform of one image shown on a reference viewer."""

import logging
from typing import Callable, List, Sequence

from .affine import AffineTransform2D
from .align import estimator
from .errors import NonInvertibleError
from .models import AlignmentRequest, AlignmentType, Annotation, TransformationType
from .rois import ROI, map_roi

log = logging.getLogger(__name__)

Listener = Callable[["TransformState", AffineTransform2D, AffineTransform2D], None]


class TransformState:
    """
    Holds the affine transform placing ``target`` on top of ``reference``
    (the image of the viewer), together with its inverse.

    Mutations either commit a new transform and notify subscribers once, in
    commit order, or raise and leave everything untouched. A listener that
    raises does not undo the commit nor stop the other listeners; its error
    is re-raised once all of them ran. When a committed
    transform is singular, ``inverse_transform`` keeps the last inverse that
    could be computed.

    Not thread-safe: mutate and subscribe from a single thread.
    """

    def __init__(self, target, reference=None):
        if target is None:
            raise TypeError("target image must not be None")
        self.target = target
        self.reference = reference
        self._listeners: List[Listener] = []
        self._transform = AffineTransform2D.identity()
        self._inverse_transform = AffineTransform2D.identity()
        self.reset()

    def __repr__(self) -> str:
        return (
            f"TransformState of {self.target} on {self.reference} with transform "
            f"{self._transform} and inverse transform {self._inverse_transform}"
        )

    @property
    def transform(self) -> AffineTransform2D:
        return self._transform

    @property
    def inverse_transform(self) -> AffineTransform2D:
        """Inverse of ``transform``, or of the last invertible one if it is singular."""
        return self._inverse_transform

    def initial_transform(self) -> AffineTransform2D:
        """Scale between the reference and target pixel sizes, identity if unknown."""
        target_size = getattr(self.target, "pixel_size", None)
        reference_size = getattr(self.reference, "pixel_size", None)
        if target_size is None or reference_size is None:
            return AffineTransform2D.identity()
        return AffineTransform2D.from_scale(
            reference_size[0] / target_size[0], reference_size[1] / target_size[1]
        )

    # --- observers ---
    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- mutations ---
    def set_matrix(self, m00, m10, m01, m11, m02, m12) -> None:
        self._commit(AffineTransform2D(m00, m10, m01, m11, m02, m12))

    def translate(self, dx: float, dy: float) -> None:
        self._commit(self._transform.translated(dx, dy))

    def rotate(
        self, theta: float, anchor_x: float = 0.0, anchor_y: float = 0.0
    ) -> None:
        """Rotate by ``theta`` radians around ``(anchor_x, anchor_y)``."""
        self._commit(self._transform.rotated(theta, anchor_x, anchor_y))

    def invert(self) -> None:
        """Replace the transform by its inverse.

        Raises ``NonInvertibleError`` without changing anything when the
        transform is singular.
        """
        self._commit(self._transform.inverse())

    def reset(self) -> None:
        self._commit(self.initial_transform())

    def align_automatically(
        self,
        base,
        target,
        alignment_type: AlignmentType,
        transformation_type: TransformationType,
        downsample: float = 1.0,
        base_annotations: Sequence[Annotation] = (),
        target_annotations: Sequence[Annotation] = (),
    ) -> AffineTransform2D:
        """Estimate a transform seeded with the current one and commit it.

        Estimation errors propagate and leave the transform unchanged.
        """
        request = AlignmentRequest(
            base=base,
            to_align=target,
            alignment_type=alignment_type,
            transformation_type=transformation_type,
            downsample=downsample,
            initial_transform=self._transform,
            base_annotations=base_annotations,
            to_align_annotations=target_annotations,
        )
        transform = estimator.estimate(request)
        self._commit(transform)
        return transform

    # --- geometry ---
    def transform_roi(self, roi: ROI) -> ROI:
        """Map ``roi`` through the current transform."""
        log.debug(f"Transforming {roi} with {self}")
        return map_roi(roi, self._transform)

    def _commit(self, transform: AffineTransform2D) -> None:
        old = self._transform
        self._transform = transform
        try:
            self._inverse_transform = transform.inverse()
            log.debug(
                f"Transform updated to {transform} and inverse transform "
                f"updated to {self._inverse_transform}"
            )
        except NonInvertibleError:
            log.warning(
                f"Cannot create inverse transform of {transform}. Inverse transform "
                f"not updated and still set to {self._inverse_transform}"
            )
        # every listener is called; the first error is re-raised afterwards
        error = None
        for listener in list(self._listeners):
            try:
                listener(self, old, transform)
            except Exception as e:
                log.error(f"Listener {listener} failed on {transform}: {e}")
                if error is None:
                    error = e
        if error is not None:
            raise error
