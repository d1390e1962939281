"""Automatic alignment: strategies, providers and engine wrappers."""

from .estimator import downsample_for_pixel_size, estimate

__all__ = ["estimate", "downsample_for_pixel_size"]
