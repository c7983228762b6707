# Author: RD7
# Purpose: Per-engine cache of phase results, affine transforms and anchor lookups
# Created: 2026-10-07

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import numpy as np

from trimorph.services.anchors import Anchor, Side
from trimorph.services.methods.affine import AffineTransform
from trimorph.services.methods.mesh import Mesh

if TYPE_CHECKING:
    from trimorph.services.engine import PhaseResult

logger = logging.getLogger(__name__)

__all__ = ["CacheStats", "MorphCache", "freeze"]


@dataclass(slots=True)
class CacheStats:
    transform_builds: int = 0
    anchor_resolutions: int = 0
    mesh_builds: int = 0
    result_hits: int = 0
    result_misses: int = 0
    invalidations: int = 0


class MorphCache:
    """Coarse-grained cache owned by one :class:`MorphingEngine`.

    Phase results are keyed by exact phase value. Transforms are keyed by
    (triangle index, phase), one map per warp direction. Anchor resolutions
    are keyed by (side, triangle index). Everything, including the mesh, is
    dropped together by :meth:`invalidate_all`.
    """

    def __init__(self) -> None:
        self.stats = CacheStats()
        self._results: dict[float, PhaseResult] = {}
        self._transforms: dict[Side, dict[tuple[int, float], AffineTransform | None]] = {
            Side.SOURCE: {},
            Side.TARGET: {},
        }
        self._anchors: dict[tuple[Side, int], list[Anchor]] = {}
        self._mesh: Mesh | None = None

    # ------------------------------------------------------------------ #
    # Phase results
    # ------------------------------------------------------------------ #
    def contains_result(self, phase: float) -> bool:
        return phase in self._results

    def get_result(self, phase: float) -> "PhaseResult | None":
        result = self._results.get(phase)
        if result is None:
            self.stats.result_misses += 1
        else:
            self.stats.result_hits += 1
        return result

    def put_result(self, phase: float, result: "PhaseResult") -> None:
        self._results[phase] = result

    @property
    def phases(self) -> list[float]:
        return sorted(self._results)

    # ------------------------------------------------------------------ #
    # Mesh, transforms, anchors
    # ------------------------------------------------------------------ #
    def mesh(self, factory: Callable[[], Mesh]) -> Mesh:
        if self._mesh is None:
            self._mesh = factory()
            self.stats.mesh_builds += 1
        return self._mesh

    def transform(
        self,
        direction: Side,
        index: int,
        phase: float,
        factory: Callable[[], AffineTransform | None],
    ) -> AffineTransform | None:
        """Cached transform for one triangle; ``None`` results are cached too."""
        table = self._transforms[direction]
        key = (index, phase)
        if key not in table:
            table[key] = factory()
            self.stats.transform_builds += 1
        return table[key]

    def transform_count(self, direction: Side | None = None) -> int:
        if direction is not None:
            return len(self._transforms[direction])
        return sum(len(t) for t in self._transforms.values())

    def anchors_for(self, side: Side, index: int, factory: Callable[[], list[Anchor]]) -> list[Anchor]:
        key = (side, index)
        if key not in self._anchors:
            self._anchors[key] = factory()
            self.stats.anchor_resolutions += 1
        return self._anchors[key]

    # ------------------------------------------------------------------ #
    # Invalidation
    # ------------------------------------------------------------------ #
    def invalidate_all(self) -> None:
        if self._results or self._mesh is not None:
            logger.debug("Invalidating %d cached phases", len(self._results))
        self._results.clear()
        for table in self._transforms.values():
            table.clear()
        self._anchors.clear()
        self._mesh = None
        self.stats.invalidations += 1

    def __len__(self) -> int:
        return len(self._results)


def freeze(buffer: np.ndarray | None) -> np.ndarray | None:
    """Mark a buffer read-only before handing it to viewers."""
    if buffer is not None:
        buffer.flags.writeable = False
    return buffer
