# Author: RD7
# Purpose: Piecewise image warping utilities
# Created: 2026-10-06

from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence

import cv2
import numpy as np

from .affine import AffineTransform
from .locate import locate_many
from .mesh import Triangle

__all__ = ["warp_image", "pull_warp", "DEFAULT_CHUNK_SIZE"]

DEFAULT_CHUNK_SIZE = 1 << 20

TransformLookup = Callable[[Triangle], Optional[AffineTransform]]


def warp_image(
    image: np.ndarray | None,
    triangles: Sequence[Triangle],
    transform_for: TransformLookup,
    delta: float,
    canvas_shape: tuple[int, int] | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> np.ndarray | None:
    """Forward ("push") warp of *image* through a piecewise-affine mesh.

    Parameters
    ----------
    image : np.ndarray | None
        Input buffer (H, W, C). ``None`` yields ``None``.
    triangles : Sequence[Triangle]
        Mesh in the image's own reference frame, searched in order.
    transform_for : callable
        Returns the transform for a located triangle, or ``None`` to leave its
        samples in place.
    delta : float
        Sampling stride; values below 1 oversample the grid.
    canvas_shape : (height, width) | None
        Size of the destination buffer. Defaults to the image size; samples
        falling outside the image itself are skipped.
    chunk_size : int
        Upper bound on samples processed at once.

    Destination pixels that no sample lands on keep the zero fill.
    """

    if image is None:
        return None
    if delta <= 0:
        raise ValueError("delta must be positive")

    img_h, img_w = image.shape[:2]
    height, width = canvas_shape if canvas_shape is not None else (img_h, img_w)
    result = np.zeros((height, width) + image.shape[2:], dtype=image.dtype)
    if height == 0 or width == 0:
        return result

    xs = np.arange(0.0, width, delta)
    ys = np.arange(0.0, height, delta)
    cols_per_chunk = max(1, int(chunk_size) // len(ys))

    transforms: dict[int, AffineTransform | None] = {}

    # x outer, y inner; later samples overwrite earlier ones
    for start in range(0, len(xs), cols_per_chunk):
        gx, gy = np.meshgrid(xs[start:start + cols_per_chunk], ys, indexing="ij")
        samples = np.column_stack([gx.ravel(), gy.ravel()])

        src_x = samples[:, 0].astype(np.int64)
        src_y = samples[:, 1].astype(np.int64)
        readable = (src_x < img_w) & (src_y < img_h)
        if not readable.all():
            samples, src_x, src_y = samples[readable], src_x[readable], src_y[readable]
            if len(samples) == 0:
                continue

        dest = samples.copy()
        if triangles:
            owner = locate_many(triangles, samples)
            for ordinal in np.unique(owner[owner >= 0]).tolist():
                if ordinal not in transforms:
                    transforms[ordinal] = transform_for(triangles[ordinal])
                transform = transforms[ordinal]
                if transform is None:
                    continue
                selected = owner == ordinal
                dest[selected] = transform.apply_many(samples[selected])

        dst_x = np.clip(np.trunc(dest[:, 0]), 0, width - 1).astype(np.int64)
        dst_y = np.clip(np.trunc(dest[:, 1]), 0, height - 1).astype(np.int64)
        result[dst_y, dst_x] = image[src_y, src_x]

    return result


def pull_warp(
    image: np.ndarray | None,
    triangle_pairs: Iterable[tuple[np.ndarray, np.ndarray]],
    canvas_shape: tuple[int, int] | None = None,
) -> np.ndarray | None:
    """Inverse ("pull") warp: every destination pixel samples the image.

    *triangle_pairs* yields (reference_triangle, current_triangle) vertex
    arrays. Pixels outside every current triangle copy the image unchanged.
    Nearest-neighbour sampling, no blending between triangles.
    """

    if image is None:
        return None

    img_h, img_w = image.shape[:2]
    height, width = canvas_shape if canvas_shape is not None else (img_h, img_w)

    result = np.zeros((height, width) + image.shape[2:], dtype=image.dtype)
    h, w = min(height, img_h), min(width, img_w)
    result[:h, :w] = image[:h, :w]

    covered = np.zeros((height, width), dtype=np.uint8)
    for ref_tri, cur_tri in triangle_pairs:
        ref_tri = np.asarray(ref_tri, dtype=np.float32)
        cur_tri = np.asarray(cur_tri, dtype=np.float32)

        # Warp entire frame for simplicity; mask restricts the written region
        warp_mat = cv2.getAffineTransform(ref_tri, cur_tri)
        warped_full = cv2.warpAffine(
            image,
            warp_mat,
            (width, height),
            flags=cv2.INTER_NEAREST,
            borderMode=cv2.BORDER_REPLICATE,
        )
        if warped_full.ndim == 2:
            warped_full = warped_full[..., None]

        tri_mask = np.zeros((height, width), dtype=np.uint8)
        cv2.fillConvexPoly(tri_mask, np.round(cur_tri).astype(np.int32), 1)
        tri_mask &= covered == 0

        region = tri_mask.astype(bool)
        result[region] = warped_full[region]
        covered |= tri_mask

    return result
