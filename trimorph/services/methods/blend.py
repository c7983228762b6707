# Author: RD7
# Purpose: Cross-dissolve of warped source and target buffers
# Created: 2026-10-06

from __future__ import annotations

import numpy as np

__all__ = ["blend"]


def blend(
    source_warped: np.ndarray | None,
    target_warped: np.ndarray | None,
    phase: float,
) -> np.ndarray | None:
    """Channel-wise linear interpolation of two equally sized buffers.

    Parameters
    ----------
    source_warped, target_warped : np.ndarray | None
        Buffers (H, W, C) of identical shape and integer dtype.
    phase : float
        0 returns *source_warped*, 1 returns *target_warped*. Clamped to [0, 1].

    Each channel is ``s + trunc(phase * (t - s))``; ``None`` if either input is missing.
    """

    if source_warped is None or target_warped is None:
        return None
    if source_warped.shape != target_warped.shape:
        raise ValueError(
            f"cannot blend buffers of different shapes {source_warped.shape} and {target_warped.shape}"
        )

    p = min(max(float(phase), 0.0), 1.0)
    src = source_warped.astype(np.int64)
    diff = target_warped.astype(np.int64) - src

    mixed = src + np.trunc(diff * p).astype(np.int64)

    info = np.iinfo(source_warped.dtype)
    return np.clip(mixed, info.min, info.max).astype(source_warped.dtype)
