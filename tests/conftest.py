# tests/conftest.py
"""Shared fixtures: synthetic rasters and in-memory image sources."""

import numpy as np
import pytest

from slidealign.sources import ArrayImageSource


def create_pixels(width, height):
    """8-bit gradient with a small texture; values wrap around at 256."""
    x = np.arange(width)[np.newaxis, :]
    y = np.arange(height)[:, np.newaxis]
    values = 20 + 10 * x + 5 * y + (x * y) % 15
    return (values % 256).astype("uint8")


def shift_array(array, shift):
    """Copy of ``array`` moved ``shift`` pixels right and down, zero padded."""
    shifted = np.zeros_like(array)
    if shift == 0:
        shifted[:] = array
    else:
        shifted[shift:, shift:] = array[:-shift, :-shift]
    return shifted


@pytest.fixture
def make_source():
    def _make_source(array, pixel_size=None, name=None):
        return ArrayImageSource(array, pixel_size=pixel_size, name=name)

    return _make_source


@pytest.fixture
def blank_source():
    return ArrayImageSource(np.zeros((500, 500), dtype="uint8"), name="blank")


@pytest.fixture
def shifted_sources(make_source):
    """Factory of (base, to_align) sources; to_align is base moved by ``shift``."""

    def _shifted_sources(width, height, shift):
        pixels = create_pixels(width, height)
        return (
            make_source(pixels, name="base"),
            make_source(shift_array(pixels, shift), name="to_align"),
        )

    return _shifted_sources
