# Author: RD7
# Purpose: Mesh edge and anchor overlays drawn on top of picture panes
# Created: 2026-10-11

from __future__ import annotations

import numpy as np
from typing import Sequence

from trimorph.services.config import Config
from trimorph.services.views import PicturePane

from kivy.graphics import Color, Ellipse, InstructionGroup, Line
from kivy.utils import get_color_from_hex

_COLOR_MAP = {
    "red": "#FF0000",
    "green": "#00FF00",
    "blue": "#0000FF",
    "yellow": "#FFFF00",
    "magenta": "#FF00FF",
    "white": "#FFFFFF",
    "black": "#000000",
}


class Overlay:
    """Render mesh edges and anchor markers on top of one picture pane.

    Instructions are dicts, e.g.::

        {"draw": "edges", "debug": "current_edges", "edges": (K, 4) array,
         "color": "#FFFF00", "width": 1.0}
        {"draw": "points", "debug": "anchors", "group": "selected",
         "location": (N, 2) array, "color": "#FF0000", "size": 4}

    Coordinates are image pixels; each layer keeps its primitives between
    calls and hides whatever it did not use.
    """

    def __init__(self, cfg: Config, pane: PicturePane):
        self.cfg = cfg
        self.pane = pane
        self._canvas = pane.canvas.after

        self._layers = {
            "points": self._draw_points,
            "edges": self._draw_edges,
        }

        # one entry per group: instruction group, color, primitive pool, used flag
        self._point_layers: dict[str, dict[str, object]] = {}
        self._edge_layers: dict[str, dict[str, object]] = {}

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def draw(self, instructions: dict | Sequence[dict] | None) -> None:
        for layer in (*self._point_layers.values(), *self._edge_layers.values()):
            layer["used"] = False

        if self.cfg.debug.show_debug is False or not instructions:
            self.clear()
            return

        items = instructions if isinstance(instructions, (list, tuple)) else [instructions]
        items = sorted(items, key=lambda item: item.get("z", 0))

        for item in items:
            if not getattr(self.cfg.debug, item.get("debug", ""), False):
                continue
            fn = self._layers.get(item.get("draw"))
            if fn:
                fn(item)

        self._clear_unused()

    def clear(self) -> None:
        for layer in self._point_layers.values():
            _hide(layer)
        for layer in self._edge_layers.values():
            _hide(layer)

    # ------------------------------------------------------------------ #
    # Points layer
    # ------------------------------------------------------------------ #
    def _draw_points(self, overlay: dict) -> None:
        points = overlay.get("location")
        if points is None or len(points) == 0:
            return

        key = overlay.get("group") or overlay.get("debug") or "points"
        layer = self._layer(self._point_layers, key)
        layer["color"].rgba = _resolve_color(overlay.get("color"), self.cfg.overlay.anchor_color)

        radius = max(1.0, float(overlay.get("size", self.cfg.overlay.anchor_radius)))
        diameter = radius * 2.0
        ellipses: list[Ellipse] = layer["items"]

        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        count = 0
        for x, y in points:
            pos = self.pane.to_widget(x, y)
            if pos is None:
                continue
            if count == len(ellipses):
                ell = Ellipse(size=(0, 0))
                layer["group"].add(ell)
                ellipses.append(ell)
            ellipses[count].pos = (pos[0] - radius, pos[1] - radius)
            ellipses[count].size = (diameter, diameter)
            count += 1

        for ell in ellipses[count:]:
            ell.size = (0, 0)
        layer["used"] = True

    # ------------------------------------------------------------------ #
    # Edge layer
    # ------------------------------------------------------------------ #
    def _draw_edges(self, overlay: dict) -> None:
        edges = overlay.get("edges")
        if edges is None or len(edges) == 0:
            return

        key = overlay.get("group") or overlay.get("debug") or "edges"
        layer = self._layer(self._edge_layers, key)
        layer["color"].rgba = _resolve_color(overlay.get("color"), self.cfg.overlay.current_edge_color)
        width = float(overlay.get("width", self.cfg.overlay.edge_width))
        lines: list[Line] = layer["items"]

        count = 0
        for x0, y0, x1, y1 in np.asarray(edges, dtype=np.float64).reshape(-1, 4):
            start = self.pane.to_widget(x0, y0)
            end = self.pane.to_widget(x1, y1)
            if start is None or end is None:
                continue
            if count == len(lines):
                line = Line(points=[0, 0, 0, 0], width=width)
                layer["group"].add(line)
                lines.append(line)
            lines[count].points = [start[0], start[1], end[0], end[1]]
            lines[count].width = width
            count += 1

        for line in lines[count:]:
            line.points = [0, 0, 0, 0]
        layer["used"] = True

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _layer(self, layers: dict[str, dict[str, object]], key: str) -> dict[str, object]:
        layer = layers.get(key)
        if layer is None:
            group = InstructionGroup()
            color = Color(0, 0, 0, 0)
            group.add(color)
            self._canvas.add(group)
            layer = {"group": group, "color": color, "items": [], "used": False}
            layers[key] = layer
        return layer

    def _clear_unused(self) -> None:
        for layer in (*self._point_layers.values(), *self._edge_layers.values()):
            if not layer["used"]:
                _hide(layer)


def _hide(layer: dict[str, object]) -> None:
    color = layer["color"]
    r, g, b, _ = color.rgba
    color.rgba = (r, g, b, 0)
    for item in layer["items"]:
        if isinstance(item, Ellipse):
            item.size = (0, 0)
        else:
            item.points = [0, 0, 0, 0]


def _resolve_color(value: str | tuple | list | None, fallback: str) -> tuple[float, float, float, float]:
    if isinstance(value, str):
        hex_code = _COLOR_MAP.get(value.lower(), value)
        return tuple(get_color_from_hex(hex_code))
    if isinstance(value, (tuple, list)):
        if max(value) > 1.0:
            rgb = [c / 255.0 for c in value[:3]]
            alpha = value[3] / 255.0 if len(value) == 4 else 1.0
        else:
            rgb = list(value[:3])
            alpha = value[3] if len(value) == 4 else 1.0
        return (*rgb, alpha)
    return tuple(get_color_from_hex(fallback))
