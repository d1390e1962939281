"""Image sources: the boundary between the estimator and image storage."""

import logging
import pathlib
from typing import Optional, Protocol, Tuple, runtime_checkable

import cv2
import numpy as np
import skimage.io

log = logging.getLogger(__name__)


@runtime_checkable
class ImageSource(Protocol):
    """What the estimator and the transform state need from an image.

    ``pixel_size`` is ``(width, height)`` in physical units (microns) or
    ``None`` when the image is not calibrated. ``read_region`` returns the
    ``(x, y, w, h)`` full resolution region resampled by ``downsample``.
    """

    width: int
    height: int
    pixel_size: Optional[Tuple[float, float]]

    def read_region(
        self, downsample: float, x: int, y: int, w: int, h: int
    ) -> np.ndarray: ...


def downsampled_shape(width, height, downsample) -> Tuple[int, int]:
    """``(rows, cols)`` of a ``width`` x ``height`` region read at ``downsample``."""
    return (
        max(1, int(round(height / downsample))),
        max(1, int(round(width / downsample))),
    )


def average_pixel_size(source) -> Optional[float]:
    pixel_size = getattr(source, "pixel_size", None)
    if pixel_size is None:
        return None
    return (pixel_size[0] + pixel_size[1]) / 2


class ArrayImageSource:
    """An image held in memory as a ``(rows, cols[, channels])`` array."""

    def __init__(self, image, pixel_size=None, name: Optional[str] = None):
        image = np.asarray(image)
        if image.ndim not in (2, 3):
            raise ValueError(
                f"Expected a 2D or 3D image array, got shape {image.shape}"
            )
        self.image = image
        self.height, self.width = image.shape[:2]
        if pixel_size is not None and np.isscalar(pixel_size):
            pixel_size = (pixel_size, pixel_size)
        if pixel_size is not None:
            pixel_size = tuple(map(float, pixel_size))
        self.pixel_size = pixel_size
        self.name = name or f"array-{self.width}x{self.height}"

    def read_region(self, downsample, x, y, w, h) -> np.ndarray:
        if downsample <= 0:
            raise ValueError(f"Downsample must be positive, got {downsample}")
        region = self.image[y : y + h, x : x + w]
        if downsample == 1:
            return np.array(region)
        rows, cols = downsampled_shape(w, h, downsample)
        # local mean when shrinking, as pyramid levels are built
        interpolation = cv2.INTER_AREA if downsample > 1 else cv2.INTER_LINEAR
        return cv2.resize(
            np.ascontiguousarray(region), (cols, rows), interpolation=interpolation
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


def read_image_source(path, pixel_size=None) -> ArrayImageSource:
    """Load an image file (PNG, TIFF, JPEG, ...) as an :class:`ArrayImageSource`."""
    path = pathlib.Path(path)
    log.info(f"Reading image {path}")
    image = skimage.io.imread(path)
    if image.ndim == 3 and image.shape[0] <= 4 < image.shape[-1]:
        # channel-first TIFF
        image = np.moveaxis(image, 0, -1)
    if pixel_size is None:
        log.debug(f"No pixel size given for {path.name}; image is uncalibrated")
    return ArrayImageSource(image, pixel_size=pixel_size, name=path.name)
