# Author: RD7
# Purpose: Morphing engine orchestrating mesh, warps, blend and caching
# Created: 2026-10-08

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence

import numpy as np

from trimorph.services.anchors import Anchor, Side, next_anchor_id
from trimorph.services.cache import MorphCache, freeze
from trimorph.services.config import MorphCfg
from trimorph.services.errors import DegenerateTriangle, ImageBufferError
from trimorph.services.image_io import load_image
from trimorph.services.methods.affine import AffineTransform, build_transform
from trimorph.services.methods.blend import blend
from trimorph.services.methods.mesh import (
    Mesh,
    Triangle,
    Triangulator,
    anchors_of,
    build_source_mesh,
    build_target_mesh,
    make_triangulator,
    triangle_edges,
)
from trimorph.services.methods.warp import pull_warp, warp_image
from trimorph.services.project import Project

logger = logging.getLogger(__name__)

__all__ = ["Quality", "Role", "PhaseResult", "MorphingEngine"]

ImageLoader = Callable[[Path], np.ndarray]


class Quality(Enum):
    """Warp sampling density; ``delta`` is the stride between samples."""

    LOW = (0, 1.0)
    MEDIUM = (1, 0.5)
    HIGH = (2, 0.25)

    def __init__(self, idx: int, delta: float) -> None:
        self.idx = idx
        self.delta = delta

    @classmethod
    def from_index(cls, idx: int) -> "Quality":
        for value in cls:
            if value.idx == idx:
                return value
        raise ValueError(f"Invalid quality index: {idx}")

    @classmethod
    def parse(cls, value: "Quality | int | str") -> "Quality":
        if isinstance(value, Quality):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_index(value)
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Invalid quality: {value!r}") from None
        raise ValueError(f"Invalid quality: {value!r}")


class Role(Enum):
    SOURCE = "source"
    TARGET = "target"
    SOURCE_WARPED = "source_warped"
    TARGET_WARPED = "target_warped"
    OUTPUT = "output"


@dataclass(frozen=True, eq=False)
class PhaseResult:
    """Everything computed for one phase value. Buffers are read-only."""

    phase: float
    source_warped: Optional[np.ndarray]
    target_warped: Optional[np.ndarray]
    output: Optional[np.ndarray]
    source_edges: np.ndarray
    target_edges: np.ndarray
    current_edges: np.ndarray


def _validate_buffer(buffer: np.ndarray | None) -> np.ndarray | None:
    if buffer is None:
        return None
    if not isinstance(buffer, np.ndarray):
        raise ImageBufferError(f"Image buffer must be a numpy array, got {type(buffer).__name__}")
    if buffer.ndim != 3 or buffer.shape[2] not in (3, 4):
        raise ImageBufferError(f"Image buffer must have shape (H, W, 3|4), got {buffer.shape}")
    if buffer.dtype != np.uint8:
        raise ImageBufferError(f"Image buffer must be uint8, got {buffer.dtype}")
    if buffer.shape[0] == 0 or buffer.shape[1] == 0:
        raise ImageBufferError("Image buffer is empty")
    return freeze(np.array(buffer, copy=True))


class MorphingEngine:
    """Turns two images and a list of anchors into a morph at any phase.

    Every mutation (images, anchors, quality, project) invalidates the whole
    cache and recomputes the current phase. Repeated queries for a phase that
    was already computed are served from the cache.
    """

    def __init__(self, cfg: MorphCfg | None = None, triangulator: Triangulator | None = None):
        self.cfg = cfg or MorphCfg()
        self.triangulator = triangulator or make_triangulator(self.cfg.triangulator)
        self.cache = MorphCache()

        if self.cfg.warp_mode not in ("forward", "inverse"):
            raise ValueError(f"Unknown warp mode {self.cfg.warp_mode!r}")

        self._anchors: list[Anchor] = []
        self._source_image: np.ndarray | None = None
        self._target_image: np.ndarray | None = None
        self._source_path: Path | None = None
        self._target_path: Path | None = None
        self._project_path: Path | None = None

        self._phase = float(self.cfg.initial_phase)
        self._quality = Quality.parse(self.cfg.quality)
        self._result: PhaseResult | None = None

        self.selected_anchor: Anchor | None = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def phase(self) -> float:
        return self._phase

    @property
    def quality(self) -> Quality:
        return self._quality

    @property
    def anchors(self) -> tuple[Anchor, ...]:
        """The live anchors, for reading and identity checks.

        Move them through :meth:`move_anchor` only; mutating an anchor
        directly bypasses cache invalidation.
        """
        return tuple(self._anchors)

    @property
    def result(self) -> PhaseResult | None:
        return self._result

    @property
    def mesh(self) -> Mesh:
        return self.cache.mesh(self._build_mesh)

    def set_phase(self, phase: float) -> PhaseResult:
        phase = float(phase)
        if not math.isfinite(phase):
            raise ValueError(f"phase must be finite, got {phase!r}")
        self._phase = phase
        return self._process()

    def set_quality(self, quality: Quality | int | str) -> PhaseResult:
        self._quality = Quality.parse(quality)
        return self._invalidate_and_refresh()

    def set_source_image(self, buffer: np.ndarray | None) -> PhaseResult:
        self._source_image = _validate_buffer(buffer)
        return self._invalidate_and_refresh()

    def set_target_image(self, buffer: np.ndarray | None) -> PhaseResult:
        self._target_image = _validate_buffer(buffer)
        return self._invalidate_and_refresh()

    def load_source_image(self, path: str | Path, image_loader: ImageLoader = load_image) -> PhaseResult:
        buffer = image_loader(Path(path))
        result = self.set_source_image(buffer)
        self._source_path = Path(path)
        return result

    def load_target_image(self, path: str | Path, image_loader: ImageLoader = load_image) -> PhaseResult:
        buffer = image_loader(Path(path))
        result = self.set_target_image(buffer)
        self._target_path = Path(path)
        return result

    def set_anchors(self, anchors: Sequence[Anchor]) -> PhaseResult:
        self._anchors = self._with_ids(anchors)
        self.selected_anchor = None
        return self._invalidate_and_refresh()

    def add_anchor(self, anchor: Anchor) -> Anchor:
        if anchor.id is None:
            anchor.id = next_anchor_id(self._anchors)
        elif any(a.id == anchor.id for a in self._anchors):
            raise ValueError(f"Anchor id {anchor.id} is already in use")
        self._anchors.append(anchor)
        self._invalidate_and_refresh()
        return anchor

    def move_anchor(
        self,
        anchor_id: int,
        source: Sequence[float] | None = None,
        target: Sequence[float] | None = None,
    ) -> PhaseResult:
        anchor = self.get_anchor(anchor_id)
        if source is not None:
            anchor.move_source(source[0], source[1])
        if target is not None:
            anchor.move_target(target[0], target[1])
        return self._invalidate_and_refresh()

    def get_anchor(self, anchor_id: int) -> Anchor:
        for anchor in self._anchors:
            if anchor.id == anchor_id:
                return anchor
        raise KeyError(f"No anchor with id {anchor_id}")

    def find_anchor(self, x: float, y: float, side: Side, radius: float) -> Anchor | None:
        """Closest anchor to (x, y) on *side* within *radius*, if any."""
        best, best_dist = None, radius
        for anchor in self._anchors:
            ax, ay = anchor.position(side.reference_phase)
            dist = math.hypot(ax - x, ay - y)
            if dist <= best_dist:
                best, best_dist = anchor, dist
        return best

    def refresh(self) -> PhaseResult:
        return self._process()

    def get_image(self, role: Role) -> np.ndarray | None:
        if role is Role.SOURCE:
            return self._source_image
        if role is Role.TARGET:
            return self._target_image

        result = self._result
        if result is None:
            return None
        if role is Role.SOURCE_WARPED:
            return result.source_warped
        if role is Role.TARGET_WARPED:
            return result.target_warped
        if role is Role.OUTPUT:
            return result.output
        raise ValueError(f"Invalid role: {role}")

    def get_triangle_edges(self, role: Role) -> np.ndarray:
        result = self._result if self._result is not None else self._process()
        if role is Role.SOURCE:
            return result.source_edges
        if role is Role.TARGET:
            return result.target_edges
        return result.current_edges

    # ------------------------------------------------------------------ #
    # Project handling
    # ------------------------------------------------------------------ #
    def set_project(
        self,
        project: Project | None,
        image_loader: ImageLoader = load_image,
    ) -> PhaseResult | None:
        """Replace images and anchors with those of *project*, then show the initial phase."""

        self.selected_anchor = None
        if project is None:
            self._anchors = []
            self._source_image = self._target_image = None
            self._source_path = self._target_path = self._project_path = None
            self._result = None
            self.cache.invalidate_all()
            return None

        # load everything first so a failing image leaves the current project intact
        source_path, target_path = project.source_image_path, project.target_image_path
        source = _validate_buffer(image_loader(source_path)) if source_path else None
        target = _validate_buffer(image_loader(target_path)) if target_path else None
        anchors = self._with_ids(project.anchors)

        self._source_path, self._target_path = source_path, target_path
        self._project_path = project.path
        self._source_image, self._target_image = source, target
        self._anchors = anchors

        self.cache.invalidate_all()
        return self.set_phase(self.cfg.initial_phase)

    @property
    def project(self) -> Project:
        """Snapshot of the current state, suitable for ``save_project``.

        Anchors are copies; editing them does not touch the engine.
        """
        return Project(
            source_image_path=self._source_path,
            target_image_path=self._target_path,
            anchors=[replace(a) for a in self._anchors],
            path=self._project_path,
        )

    # ------------------------------------------------------------------ #
    # Recompute
    # ------------------------------------------------------------------ #
    def _invalidate_and_refresh(self) -> PhaseResult:
        self.cache.invalidate_all()
        return self._process()

    def _process(self) -> PhaseResult:
        phase = self._phase
        cached = self.cache.get_result(phase)
        if cached is not None:
            logger.debug("Phase %.4f served from cache", phase)
            self._result = cached
            return cached

        start = time.perf_counter()
        mesh = self.cache.mesh(self._build_mesh)
        resolve = self._resolver(Side.SOURCE)

        canvas = self._canvas_shape()
        source_warped = self._warp(self._source_image, Side.SOURCE, mesh, canvas)
        target_warped = self._warp(self._target_image, Side.TARGET, mesh, canvas)

        result = PhaseResult(
            phase=phase,
            source_warped=freeze(source_warped),
            target_warped=freeze(target_warped),
            output=freeze(blend(source_warped, target_warped, phase)),
            source_edges=freeze(triangle_edges(mesh.source, resolve, 0.0)),
            target_edges=freeze(triangle_edges(mesh.source, resolve, 1.0)),
            current_edges=freeze(triangle_edges(mesh.source, resolve, phase)),
        )
        self.cache.put_result(phase, result)
        self._result = result

        logger.info(
            "Computed phase %.4f: %d triangles, quality %s, %.2fs",
            phase,
            len(mesh),
            self._quality.name.lower(),
            time.perf_counter() - start,
        )
        return result

    def _canvas_shape(self) -> tuple[int, int] | None:
        # both warps share the source canvas so the blend sees equal sizes
        for image in (self._source_image, self._target_image):
            if image is not None:
                return image.shape[0], image.shape[1]
        return None

    def _build_mesh(self) -> Mesh:
        source = build_source_mesh(self._anchors, self.triangulator)
        target = build_target_mesh(source, self._anchors, resolve=self._resolver(Side.SOURCE))
        return Mesh(source=source, target=target)

    def _resolver(self, side: Side) -> Callable[[Triangle], list[Anchor]]:
        def resolve(tri: Triangle) -> list[Anchor]:
            return self.cache.anchors_for(
                side,
                tri.index,
                lambda: anchors_of(tri, self._anchors, side.reference_phase, self.cfg.match_epsilon),
            )

        return resolve

    def _warp(
        self,
        image: np.ndarray | None,
        side: Side,
        mesh: Mesh,
        canvas: tuple[int, int] | None,
    ) -> np.ndarray | None:
        if image is None:
            return None

        triangles = mesh.source if side is Side.SOURCE else mesh.target
        if self.cfg.warp_mode == "inverse":
            return pull_warp(image, self._triangle_pairs(side, triangles), canvas)

        return warp_image(
            image,
            triangles,
            lambda tri: self._transform_for(side, tri),
            self._quality.delta,
            canvas_shape=canvas,
            chunk_size=self.cfg.warp_chunk_size,
        )

    def _transform_for(self, side: Side, tri: Triangle) -> AffineTransform | None:
        return self.cache.transform(side, tri.index, self._phase, lambda: self._build_transform(side, tri))

    def _build_transform(self, side: Side, tri: Triangle) -> AffineTransform | None:
        anchors = self._resolver(side)(tri)
        if len(anchors) < 3:
            return None

        reference = [a.position(side.reference_phase) for a in anchors]
        current = [a.position(self._phase) for a in anchors]
        try:
            return build_transform(reference, current)
        except DegenerateTriangle as exc:
            logger.warning("Skipping triangle %d on the %s side: %s", tri.index, side.name.lower(), exc)
            return None

    def _triangle_pairs(
        self, side: Side, triangles: Sequence[Triangle]
    ) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        for tri in triangles:
            if self._transform_for(side, tri) is None:
                continue
            anchors = self._resolver(side)(tri)
            reference = np.array([a.position(side.reference_phase) for a in anchors])
            current = np.array([a.position(self._phase) for a in anchors])
            yield reference, current

    @staticmethod
    def _with_ids(anchors: Sequence[Anchor]) -> list[Anchor]:
        seen: set[int] = set()
        for anchor in anchors:
            if anchor.id is None:
                continue
            if anchor.id in seen:
                raise ValueError(f"Duplicate anchor id {anchor.id}")
            seen.add(anchor.id)

        next_id = max(seen, default=-1) + 1
        for anchor in anchors:
            if anchor.id is None:
                anchor.id = next_id
                next_id += 1
        return list(anchors)
