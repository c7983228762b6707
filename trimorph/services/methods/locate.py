# Author: RD7
# Purpose: Point-in-triangle tests and enclosing-triangle lookup
# Created: 2026-10-06

from __future__ import annotations

from typing import Sequence

import numpy as np

from .mesh import Triangle

__all__ = ["point_in_triangle", "contains_points", "locate", "locate_many"]


def _cross(o, a, b):
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def point_in_triangle(point: Sequence[float], vertices: Sequence[Sequence[float]]) -> bool:
    """Return True if *point* lies inside the triangle or on its boundary.

    Zero-area triangles contain nothing.
    """

    v0, v1, v2 = vertices
    if _cross(v0, v1, v2) == 0:
        return False

    d1 = _cross(v0, v1, point)
    d2 = _cross(v1, v2, point)
    d3 = _cross(v2, v0, point)

    has_neg = d1 < 0 or d2 < 0 or d3 < 0
    has_pos = d1 > 0 or d2 > 0 or d3 > 0
    return not (has_neg and has_pos)


def contains_points(points: np.ndarray, vertices: np.ndarray) -> np.ndarray:
    """Vectorised :func:`point_in_triangle` over an (N, 2) array."""

    pts = np.asarray(points, dtype=np.float64)
    v = np.asarray(vertices, dtype=np.float64)
    if _cross(v[0], v[1], v[2]) == 0:
        return np.zeros(len(pts), dtype=bool)

    x, y = pts[:, 0], pts[:, 1]
    d1 = (v[1, 0] - v[0, 0]) * (y - v[0, 1]) - (v[1, 1] - v[0, 1]) * (x - v[0, 0])
    d2 = (v[2, 0] - v[1, 0]) * (y - v[1, 1]) - (v[2, 1] - v[1, 1]) * (x - v[1, 0])
    d3 = (v[0, 0] - v[2, 0]) * (y - v[2, 1]) - (v[0, 1] - v[2, 1]) * (x - v[2, 0])

    has_neg = (d1 < 0) | (d2 < 0) | (d3 < 0)
    has_pos = (d1 > 0) | (d2 > 0) | (d3 > 0)
    return ~(has_neg & has_pos)


def locate(triangles: Sequence[Triangle], x: float, y: float) -> Triangle | None:
    """First triangle (in mesh order) containing (x, y), or None."""

    for tri in triangles:
        if point_in_triangle((x, y), tri.vertices):
            return tri
    return None


def locate_many(triangles: Sequence[Triangle], points: np.ndarray) -> np.ndarray:
    """Ordinal of the first containing triangle for every point, -1 where none does."""

    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    owner = np.full(len(pts), -1, dtype=np.int64)

    for ordinal, tri in enumerate(triangles):
        pending = np.flatnonzero(owner < 0)
        if pending.size == 0:
            break
        hit = contains_points(pts[pending], tri.as_array())
        owner[pending[hit]] = ordinal

    return owner
