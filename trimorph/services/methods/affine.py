# Author: RD7
# Purpose: Triangle-to-triangle affine transforms
# Created: 2026-10-06

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from trimorph.services.errors import DegenerateTriangle

__all__ = ["AffineTransform", "build_transform"]

# relative to the squared extent of the triangle
_AREA_TOLERANCE = 1e-12


@dataclass(frozen=True)
class AffineTransform:
    """2D affine map ``[x', y'] = M @ [x, y, 1]`` with M of shape (2, 3)."""

    matrix: np.ndarray

    def __post_init__(self) -> None:
        m = np.array(self.matrix, dtype=np.float64)
        if m.shape != (2, 3):
            raise ValueError("affine matrix must have shape (2, 3)")
        m.flags.writeable = False
        object.__setattr__(self, "matrix", m)

    @classmethod
    def identity(cls) -> "AffineTransform":
        return cls(np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]))

    def apply(self, x: float, y: float) -> tuple[float, float]:
        (a, b, c), (d, e, f) = self.matrix.tolist()
        return a * x + b * y + c, d * x + e * y + f

    def apply_many(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        m = self.matrix
        out = np.empty_like(pts)
        out[:, 0] = m[0, 0] * pts[:, 0] + m[0, 1] * pts[:, 1] + m[0, 2]
        out[:, 1] = m[1, 0] * pts[:, 0] + m[1, 1] * pts[:, 1] + m[1, 2]
        return out


def build_transform(
    from_vertices: Sequence[Sequence[float]],
    to_vertices: Sequence[Sequence[float]],
) -> AffineTransform:
    """Solve the affine map sending each vertex of *from_vertices* onto *to_vertices*.

    Parameters
    ----------
    from_vertices, to_vertices : Sequence[(x, y)]
        Corresponding triangles, three vertices each, in matching order.

    Raises
    ------
    DegenerateTriangle
        If *from_vertices* spans (almost) no area; no unique map exists then.
    """

    src = np.asarray(from_vertices, dtype=np.float64)
    dst = np.asarray(to_vertices, dtype=np.float64)
    if src.shape != (3, 2) or dst.shape != (3, 2):
        raise ValueError("triangles must be (3, 2) arrays of vertices")

    if np.array_equal(src, dst):
        return AffineTransform.identity()

    system = np.column_stack([src, np.ones(3)])
    extent = float(np.ptp(src, axis=0).max()) if np.all(np.isfinite(src)) else 0.0
    det = float(np.linalg.det(system))
    if extent == 0.0 or abs(det) <= _AREA_TOLERANCE * extent * extent:
        raise DegenerateTriangle(f"cannot build an affine map from degenerate triangle {src.tolist()}")

    # system @ coeffs = dst  ->  coeffs is (3, 2); matrix rows are its columns
    coeffs = np.linalg.solve(system, dst)
    return AffineTransform(coeffs.T)
