# Author: RD7
# Purpose: Picture panes showing engine buffers in the viewer
# Created: 2026-10-11

from __future__ import annotations

from typing import Optional

import numpy as np

from kivy.graphics.texture import Texture
from kivy.uix.image import Image

from trimorph.services.engine import Role


class PicturePane(Image):
    """Image widget bound to one engine role, with image <-> widget coordinate helpers."""

    def __init__(self, role: Role, **kwargs):
        kwargs.setdefault("fit_mode", "contain")
        super().__init__(**kwargs)
        self.role = role
        self._buffer_size: tuple[int, int] | None = None  # (width, height)

    def set_buffer(self, buffer: Optional[np.ndarray]) -> None:
        if buffer is None:
            self.texture = None
            self._buffer_size = None
            return

        h, w = buffer.shape[:2]
        colorfmt = "rgba" if buffer.shape[2] == 4 else "rgb"

        texture = self.texture
        if (
            texture is None
            or tuple(texture.size) != (w, h)
            or texture.colorfmt != colorfmt
        ):
            texture = Texture.create(size=(w, h), colorfmt=colorfmt)
            # buffers are stored top row first, textures bottom row first
            texture.flip_vertical()

        texture.blit_buffer(np.ascontiguousarray(buffer).tobytes(), colorfmt=colorfmt, bufferfmt="ubyte")
        self.texture = texture
        self._buffer_size = (w, h)
        self.canvas.ask_update()

    # ------------------------------------------------------------------ #
    # Coordinate mapping
    # ------------------------------------------------------------------ #
    def _display_rect(self) -> tuple[float, float, float] | None:
        """(left, top, scale) of the displayed image in window coordinates."""
        if self._buffer_size is None:
            return None
        img_w, img_h = self._buffer_size
        if img_w == 0 or img_h == 0 or self.width == 0 or self.height == 0:
            return None

        scale = min(self.width / img_w, self.height / img_h)
        left = self.center_x - img_w * scale / 2.0
        top = self.center_y + img_h * scale / 2.0
        return left, top, scale

    def to_image(self, wx: float, wy: float) -> tuple[float, float] | None:
        """Image pixel coordinates under a window position, None outside the picture."""
        rect = self._display_rect()
        if rect is None:
            return None
        left, top, scale = rect
        x = (wx - left) / scale
        y = (top - wy) / scale

        img_w, img_h = self._buffer_size
        if not (0.0 <= x < img_w and 0.0 <= y < img_h):
            return None
        return x, y

    def to_widget(self, x: float, y: float) -> tuple[float, float] | None:
        rect = self._display_rect()
        if rect is None:
            return None
        left, top, scale = rect
        return left + x * scale, top - y * scale

    @property
    def display_scale(self) -> float:
        rect = self._display_rect()
        return rect[2] if rect is not None else 1.0
