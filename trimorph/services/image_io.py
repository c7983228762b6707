# Author: RD7
# Purpose: Image file loading and saving through OpenCV
# Created: 2026-10-07

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from trimorph.services.errors import ImageBufferError, ImageIOError

logger = logging.getLogger(__name__)

__all__ = ["load_image", "save_image", "to_rgba"]


def to_rgba(image: np.ndarray, bgr: bool = False) -> np.ndarray:
    """Return *image* as an (H, W, 4) uint8 RGBA buffer.

    Accepts grey (H, W) or (H, W, 1), three and four channel inputs; 16-bit
    data is scaled down to 8 bits. *bgr* marks OpenCV channel order.
    """

    arr = np.asarray(image)
    if arr.dtype == np.uint16:
        arr = (arr // 257).astype(np.uint8)
    elif arr.dtype != np.uint8:
        raise ImageBufferError(f"Unsupported image dtype: {arr.dtype}")

    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[:, :, 0]

    if arr.ndim == 2:
        return cv2.cvtColor(arr, cv2.COLOR_GRAY2RGBA)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ImageBufferError(f"Unsupported image shape: {arr.shape}")

    if arr.shape[2] == 3:
        code = cv2.COLOR_BGR2RGBA if bgr else cv2.COLOR_RGB2RGBA
        return cv2.cvtColor(arr, code)
    if bgr:
        return cv2.cvtColor(arr, cv2.COLOR_BGRA2RGBA)
    return np.ascontiguousarray(arr)


def load_image(path: str | Path) -> np.ndarray:
    """Read an image file into an RGBA uint8 buffer."""

    path = Path(path)
    logger.info("Loading image from %s", path)
    if not path.is_file():
        raise ImageIOError(f"Failed to load image from file {path}: no such file")

    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageIOError(f"Failed to load image from file {path}: unsupported or corrupt data")

    try:
        return to_rgba(image, bgr=True)
    except ImageBufferError as exc:
        raise ImageIOError(f"Failed to load image from file {path}: {exc}") from exc


def save_image(path: str | Path, buffer: np.ndarray) -> Path:
    """Write an RGB or RGBA uint8 buffer; the format follows the file extension."""

    path = Path(path)
    arr = np.asarray(buffer)
    if arr.dtype != np.uint8 or arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ImageBufferError(f"Cannot save buffer of shape {arr.shape} and dtype {arr.dtype}")

    code = cv2.COLOR_RGBA2BGRA if arr.shape[2] == 4 else cv2.COLOR_RGB2BGR
    bgr = cv2.cvtColor(arr, code)

    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), bgr):
        raise ImageIOError(f"Failed to write image to {path}")
    logger.info("Wrote %s", path)
    return path
