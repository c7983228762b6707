# Author: RD7
# Purpose: Anchor point correspondences between source and target images
# Created: 2026-10-05

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

__all__ = ["Anchor", "Side", "next_anchor_id"]


class Side(Enum):
    """Reference configuration a triangle or transform is anchored to."""

    SOURCE = 0.0
    TARGET = 1.0

    @property
    def reference_phase(self) -> float:
        return self.value


def _check_finite(*values: float) -> None:
    for value in values:
        if not math.isfinite(value):
            raise ValueError(f"anchor coordinates must be finite, got {value!r}")


@dataclass(slots=True)
class Anchor:
    """A user-placed correspondence between a source and a target position."""

    id: int | None
    source_x: float
    source_y: float
    target_x: float
    target_y: float

    def __post_init__(self) -> None:
        self.source_x = float(self.source_x)
        self.source_y = float(self.source_y)
        self.target_x = float(self.target_x)
        self.target_y = float(self.target_y)
        _check_finite(self.source_x, self.source_y, self.target_x, self.target_y)

    @classmethod
    def at(cls, x: float, y: float, id: int | None = None) -> "Anchor":
        """Anchor whose source and target positions coincide."""
        return cls(id, x, y, x, y)

    @classmethod
    def between(
        cls,
        source: Sequence[float],
        target: Sequence[float],
        id: int | None = None,
    ) -> "Anchor":
        return cls(id, source[0], source[1], target[0], target[1])

    # phase 0 and 1 must return the stored values exactly, hence the lerp form
    def x(self, phase: float) -> float:
        return (1.0 - phase) * self.source_x + phase * self.target_x

    def y(self, phase: float) -> float:
        return (1.0 - phase) * self.source_y + phase * self.target_y

    def position(self, phase: float) -> tuple[float, float]:
        """Position interpolated between source (phase 0) and target (phase 1).

        Phase is not clamped.
        """
        return self.x(phase), self.y(phase)

    @property
    def source(self) -> tuple[float, float]:
        return self.source_x, self.source_y

    @property
    def target(self) -> tuple[float, float]:
        return self.target_x, self.target_y

    def move_source(self, x: float, y: float) -> None:
        _check_finite(float(x), float(y))
        self.source_x, self.source_y = float(x), float(y)

    def move_target(self, x: float, y: float) -> None:
        _check_finite(float(x), float(y))
        self.target_x, self.target_y = float(x), float(y)

    def move(self, side: Side, x: float, y: float) -> None:
        if side is Side.SOURCE:
            self.move_source(x, y)
        else:
            self.move_target(x, y)


def next_anchor_id(anchors: Iterable[Anchor]) -> int:
    ids = [a.id for a in anchors if a.id is not None]
    return max(ids, default=-1) + 1
