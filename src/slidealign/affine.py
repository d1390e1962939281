"""2D affine transform value type.

The six parameters follow the usual row-major 2x3 layout::

    | m00 m01 m02 |
    | m10 m11 m12 |

Constructors and ``params`` take them in column order
``(m00, m10, m01, m11, m02, m12)``, which is what viewers exchange.
"""

import math
import re
from typing import Iterable, Tuple

import numpy as np

from .config import INVERTIBLE_TOLERANCE, TEXT_PRECISION
from .errors import ArgumentError, NonInvertibleError

_SEPARATORS = re.compile(r"[,\s]+")


class AffineTransform2D:
    """Immutable 2D affine transform backed by a 3x3 homogeneous matrix."""

    __slots__ = ("_matrix",)

    def __init__(
        self,
        m00: float = 1.0,
        m10: float = 0.0,
        m01: float = 0.0,
        m11: float = 1.0,
        m02: float = 0.0,
        m12: float = 0.0,
    ):
        mx = np.array(
            [[m00, m01, m02], [m10, m11, m12], [0.0, 0.0, 1.0]], dtype="float64"
        )
        mx.setflags(write=False)
        self._matrix = mx

    # --- constructors ---
    @classmethod
    def identity(cls) -> "AffineTransform2D":
        return cls()

    @classmethod
    def from_matrix(cls, matrix) -> "AffineTransform2D":
        """Build from a 2x3 or 3x3 array (rows ``[m00 m01 m02]``, ``[m10 m11 m12]``)."""
        mx = np.asarray(matrix, dtype="float64")
        if mx.shape not in ((2, 3), (3, 3)):
            raise ArgumentError(f"Expected a 2x3 or 3x3 matrix, got shape {mx.shape}")
        return cls(mx[0, 0], mx[1, 0], mx[0, 1], mx[1, 1], mx[0, 2], mx[1, 2])

    @classmethod
    def from_scale(cls, sx: float, sy: float) -> "AffineTransform2D":
        return cls(m00=sx, m11=sy)

    @classmethod
    def from_translation(cls, dx: float, dy: float) -> "AffineTransform2D":
        return cls(m02=dx, m12=dy)

    @classmethod
    def from_rotation(
        cls, theta: float, anchor_x: float = 0.0, anchor_y: float = 0.0
    ) -> "AffineTransform2D":
        """Rotation by ``theta`` radians about ``(anchor_x, anchor_y)``."""
        cos, sin = math.cos(theta), math.sin(theta)
        rotation = cls(cos, sin, -sin, cos, 0.0, 0.0)
        if anchor_x == 0 and anchor_y == 0:
            return rotation
        return (
            cls.from_translation(anchor_x, anchor_y)
            .concatenate(rotation)
            .concatenate(cls.from_translation(-anchor_x, -anchor_y))
        )

    @classmethod
    def from_text(cls, text: str) -> "AffineTransform2D":
        """Parse two rows of three numbers separated by commas and/or whitespace."""
        tokens = [tt for tt in _SEPARATORS.split(text.strip()) if tt]
        if len(tokens) != 6:
            raise ArgumentError(
                f"Expected 6 numbers in transform text, got {len(tokens)}: {text!r}"
            )
        try:
            m00, m01, m02, m10, m11, m12 = map(float, tokens)
        except ValueError as e:
            raise ArgumentError(f"Cannot parse transform text {text!r}: {e}") from e
        return cls(m00, m10, m01, m11, m02, m12)

    # --- accessors ---
    @property
    def matrix(self) -> np.ndarray:
        """Writable 3x3 copy of the homogeneous matrix."""
        return np.array(self._matrix)

    @property
    def params(self) -> Tuple[float, float, float, float, float, float]:
        mx = self._matrix
        return (
            float(mx[0, 0]),
            float(mx[1, 0]),
            float(mx[0, 1]),
            float(mx[1, 1]),
            float(mx[0, 2]),
            float(mx[1, 2]),
        )

    @property
    def scale_x(self) -> float:
        return float(self._matrix[0, 0])

    @property
    def scale_y(self) -> float:
        return float(self._matrix[1, 1])

    @property
    def shear_x(self) -> float:
        return float(self._matrix[0, 1])

    @property
    def shear_y(self) -> float:
        return float(self._matrix[1, 0])

    @property
    def translation(self) -> Tuple[float, float]:
        return float(self._matrix[0, 2]), float(self._matrix[1, 2])

    @property
    def determinant(self) -> float:
        mx = self._matrix
        return float(mx[0, 0] * mx[1, 1] - mx[0, 1] * mx[1, 0])

    @property
    def is_invertible(self) -> bool:
        det = self.determinant
        return math.isfinite(det) and abs(det) > INVERTIBLE_TOLERANCE

    @property
    def is_identity(self) -> bool:
        return self == AffineTransform2D()

    # --- algebra ---
    def concatenate(self, other: "AffineTransform2D") -> "AffineTransform2D":
        """``self @ other``: ``other`` is applied to points first."""
        return AffineTransform2D.from_matrix(self._matrix @ other._matrix)

    def pre_concatenate(self, other: "AffineTransform2D") -> "AffineTransform2D":
        """``other @ self``: ``other`` is applied to points last."""
        return AffineTransform2D.from_matrix(other._matrix @ self._matrix)

    def inverse(self) -> "AffineTransform2D":
        if not self.is_invertible:
            raise NonInvertibleError(
                f"Transform {self.params} is not invertible "
                f"(determinant {self.determinant})"
            )
        (m00, m01, m02), (m10, m11, m12) = self._matrix[:2]
        det = self.determinant
        return AffineTransform2D(
            m11 / det,
            -m10 / det,
            -m01 / det,
            m00 / det,
            (m01 * m12 - m11 * m02) / det,
            (m10 * m02 - m00 * m12) / det,
        )

    def translated(self, dx: float, dy: float) -> "AffineTransform2D":
        return self.concatenate(AffineTransform2D.from_translation(dx, dy))

    def rotated(
        self, theta: float, anchor_x: float = 0.0, anchor_y: float = 0.0
    ) -> "AffineTransform2D":
        return self.concatenate(
            AffineTransform2D.from_rotation(theta, anchor_x, anchor_y)
        )

    def transform_points(self, points) -> np.ndarray:
        """Map an Nx2 array of ``(x, y)`` points."""
        pts = np.asarray(points, dtype="float64").reshape(-1, 2)
        return pts @ self._matrix[:2, :2].T + self._matrix[:2, 2]

    def transform_point(self, x: float, y: float) -> Tuple[float, float]:
        [(tx, ty)] = self.transform_points([[x, y]])
        return float(tx), float(ty)

    def almost_equals(self, other: "AffineTransform2D", tol: float = 1e-9) -> bool:
        return bool(np.allclose(self._matrix, other._matrix, rtol=0, atol=tol))

    # --- text format ---
    def to_text(self, precision: int = TEXT_PRECISION) -> str:
        (m00, m01, m02), (m10, m11, m12) = self._matrix[:2]
        fmt = f"%.{precision}f"
        row = f"{fmt},\t{fmt},\t{fmt}"
        return (row + ",\n" + row) % (m00, m01, m02, m10, m11, m12)

    # --- dunder ---
    def __eq__(self, other) -> bool:
        if not isinstance(other, AffineTransform2D):
            return NotImplemented
        return bool(np.array_equal(self._matrix, other._matrix))

    def __hash__(self) -> int:
        return hash(self.params)

    def __iter__(self) -> Iterable[float]:
        return iter(self.params)

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{name}={value:g}"
            for name, value in zip(("m00", "m10", "m01", "m11", "m02", "m12"), self)
        )
        return f"AffineTransform2D({fields})"
