# Author: RD7
# Purpose: Triangle mesh helpers for anchor-driven morphing
# Created: 2026-10-05

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Protocol, Sequence

import cv2
import numpy as np

from scipy.spatial import Delaunay, QhullError  # type: ignore

from trimorph.services.anchors import Anchor
from trimorph.services.errors import GeometryFailure

logger = logging.getLogger(__name__)

__all__ = [
    "MATCH_EPSILON",
    "Triangle",
    "Mesh",
    "Triangulator",
    "DelaunayTriangulator",
    "SubdivTriangulator",
    "make_triangulator",
    "build_source_mesh",
    "build_target_mesh",
    "anchors_of",
    "triangle_edges",
]

MATCH_EPSILON = 0.01

Resolver = Callable[["Triangle"], list[Anchor]]

_DEGENERATE_VERTICES = ((0.0, 0.0), (0.0, 0.0), (0.0, 0.0))


@dataclass(frozen=True, slots=True)
class Triangle:
    """One mesh triangle.

    ``index`` is the ordinal within its mesh and doubles as the cache identity.
    ``anchor_ids`` tags each vertex with the anchor it was built from; it is
    ``None`` when the triangulation backend only reports coordinates.
    """

    index: int
    vertices: tuple[tuple[float, float], ...]
    anchor_ids: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        if len(self.vertices) != 3:
            raise ValueError("a triangle needs exactly three vertices")

    def as_array(self) -> np.ndarray:
        return np.asarray(self.vertices, dtype=np.float64)

    @property
    def area(self) -> float:
        (x0, y0), (x1, y1), (x2, y2) = self.vertices
        return abs((x1 - x0) * (y2 - y0) - (y1 - y0) * (x2 - x0)) / 2.0

    @property
    def is_degenerate(self) -> bool:
        return self.area == 0.0

    @property
    def centroid(self) -> tuple[float, float]:
        xs, ys = zip(*self.vertices)
        return sum(xs) / 3.0, sum(ys) / 3.0


@dataclass(slots=True)
class Mesh:
    """Source triangles plus target triangles with the same ordinal correspondence."""

    source: list[Triangle]
    target: list[Triangle]

    def __post_init__(self) -> None:
        if len(self.source) != len(self.target):
            raise ValueError(
                f"source and target meshes differ in size ({len(self.source)} != {len(self.target)})"
            )

    def __len__(self) -> int:
        return len(self.source)

    @classmethod
    def empty(cls) -> "Mesh":
        return cls(source=[], target=[])


# --------------------------------------------------------------------------- #
# Triangulation backends
# --------------------------------------------------------------------------- #
class Triangulator(Protocol):
    """Capability interface: points (N, 2) in, triangles out.

    Backends that know which input point produced each vertex report it in
    ``Triangle.anchor_ids`` as an index into *points*.
    """

    def triangulate(self, points: np.ndarray) -> list[Triangle]:
        ...


def _as_points(points: Sequence[Sequence[float]]) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError("points must be an (N, 2) array of coordinates")
    return pts


class DelaunayTriangulator:
    """Delaunay triangulation through ``scipy.spatial.Delaunay`` (Qhull)."""

    name = "delaunay"

    def triangulate(self, points: np.ndarray) -> list[Triangle]:
        pts = _as_points(points)
        if len(pts) < 3:
            raise GeometryFailure("At least three points required to build a mesh")

        try:
            tri = Delaunay(pts)
        except (QhullError, ValueError) as exc:
            raise GeometryFailure(f"Delaunay triangulation failed: {exc}") from exc

        triangles = []
        for idx, simplex in enumerate(np.asarray(tri.simplices, dtype=np.int64)):
            vertices = tuple((float(pts[v, 0]), float(pts[v, 1])) for v in simplex)
            triangles.append(
                Triangle(index=idx, vertices=vertices, anchor_ids=tuple(int(v) for v in simplex))
            )
        return triangles


class SubdivTriangulator:
    """Delaunay triangulation through OpenCV's ``Subdiv2D``.

    Subdiv2D reports vertex coordinates only (as float32), so triangles come
    back untagged and are matched to anchors by proximity.
    """

    name = "subdiv"

    def triangulate(self, points: np.ndarray) -> list[Triangle]:
        pts = _as_points(points)
        if len(pts) < 3:
            raise GeometryFailure("At least three points required to build a mesh")
        if not np.all(np.isfinite(pts)):
            raise GeometryFailure("points must be finite")

        x0 = math.floor(pts[:, 0].min()) - 1
        y0 = math.floor(pts[:, 1].min()) - 1
        w = math.ceil(pts[:, 0].max()) - x0 + 2
        h = math.ceil(pts[:, 1].max()) - y0 + 2

        try:
            subdiv = cv2.Subdiv2D((int(x0), int(y0), int(w), int(h)))
            for x, y in pts:
                subdiv.insert((float(x), float(y)))
            raw = subdiv.getTriangleList()
        except cv2.error as exc:
            raise GeometryFailure(f"Subdiv2D triangulation failed: {exc}") from exc

        if raw is None or len(raw) == 0:
            return []

        raw = np.asarray(raw, dtype=np.float64).reshape(-1, 6)
        xs, ys = raw[:, 0::2], raw[:, 1::2]
        # drop triangles touching Subdiv2D's virtual outer vertices
        inside = (
            np.all(xs >= x0, axis=1)
            & np.all(xs < x0 + w, axis=1)
            & np.all(ys >= y0, axis=1)
            & np.all(ys < y0 + h, axis=1)
        )

        triangles = []
        for row in raw[inside]:
            vertices = ((row[0], row[1]), (row[2], row[3]), (row[4], row[5]))
            triangles.append(Triangle(index=len(triangles), vertices=vertices))
        return triangles


_TRIANGULATORS = {
    DelaunayTriangulator.name: DelaunayTriangulator,
    SubdivTriangulator.name: SubdivTriangulator,
}


def make_triangulator(name: str) -> Triangulator:
    try:
        return _TRIANGULATORS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown triangulator {name!r}; choose from {sorted(_TRIANGULATORS)}"
        ) from None


# --------------------------------------------------------------------------- #
# Mesh construction
# --------------------------------------------------------------------------- #
def build_source_mesh(anchors: Sequence[Anchor], triangulator: Triangulator) -> list[Triangle]:
    """Triangulate the anchors' source (phase 0) positions.

    Returns an empty list for fewer than three anchors or when the backend
    rejects the configuration (collinear or otherwise degenerate points).
    """

    if len(anchors) < 3:
        return []

    points = np.array([a.position(0.0) for a in anchors], dtype=np.float64)
    try:
        raw = triangulator.triangulate(points)
    except (GeometryFailure, ValueError) as exc:
        logger.warning("Triangulation of %d anchors failed, using an empty mesh: %s", len(anchors), exc)
        return []

    tagged = all(a.id is not None for a in anchors)
    triangles = []
    for idx, tri in enumerate(raw):
        ids = None
        if tagged and tri.anchor_ids is not None:
            ids = tuple(anchors[i].id for i in tri.anchor_ids)
        triangles.append(replace(tri, index=idx, anchor_ids=ids))
    return triangles


def build_target_mesh(
    source_triangles: Sequence[Triangle],
    anchors: Sequence[Anchor],
    resolve: Resolver | None = None,
    epsilon: float = MATCH_EPSILON,
) -> list[Triangle]:
    """Rebuild every source triangle from its anchors' target (phase 1) positions.

    Connectivity is reused as is. A triangle whose anchors cannot be resolved
    is replaced by a zero-area one so both lists stay parallel.
    """

    if resolve is None:
        def resolve(tri: Triangle) -> list[Anchor]:
            return anchors_of(tri, anchors, 0.0, epsilon)

    result = []
    for tri in source_triangles:
        found = resolve(tri)
        if len(found) < 3:
            logger.warning(
                "Triangle %d resolved to %d anchors; substituting a degenerate target triangle",
                tri.index,
                len(found),
            )
            result.append(Triangle(index=tri.index, vertices=_DEGENERATE_VERTICES))
            continue

        vertices = tuple(a.position(1.0) for a in found)
        ids = tuple(a.id for a in found) if all(a.id is not None for a in found) else None
        result.append(Triangle(index=tri.index, vertices=vertices, anchor_ids=ids))
    return result


def anchors_of(
    triangle: Triangle,
    anchors: Sequence[Anchor],
    matching_phase: float,
    epsilon: float = MATCH_EPSILON,
) -> list[Anchor]:
    """Resolve the anchors behind *triangle*, in vertex order.

    Tagged triangles are resolved by anchor id. Untagged ones are matched by
    comparing each vertex with every anchor's position at *matching_phase*;
    both coordinate deltas must be below *epsilon*. A result shorter than
    three is logged and returned unchanged.
    """

    found: list[Anchor] = []
    if triangle.anchor_ids is not None:
        by_id = {a.id: a for a in anchors}
        found = [by_id[i] for i in triangle.anchor_ids if i in by_id]
    else:
        for px, py in triangle.vertices:
            for anchor in anchors:
                if abs(anchor.x(matching_phase) - px) < epsilon and abs(anchor.y(matching_phase) - py) < epsilon:
                    found.append(anchor)
                    break

    if len(found) != 3:
        logger.warning("Found only %d anchors for triangle %d", len(found), triangle.index)
    return found


def triangle_edges(
    source_triangles: Sequence[Triangle],
    resolve: Resolver,
    phase: float,
) -> np.ndarray:
    """Edge list ``[x0, y0, x1, y1]`` of the mesh evaluated at *phase*, shape (3M, 4)."""

    edges: list[tuple[float, float, float, float]] = []
    for tri in source_triangles:
        found = resolve(tri)
        if len(found) < 3:
            continue
        p0, p1, p2 = (a.position(phase) for a in found)
        edges.append((*p0, *p1))
        edges.append((*p1, *p2))
        edges.append((*p2, *p0))
    return np.asarray(edges, dtype=np.float64).reshape(-1, 4)
