# Author: RD7
# Purpose: Main controller for the TriMorph viewer
# Created: 2026-10-11

import logging
from pathlib import Path

from kivy.clock import Clock

from trimorph.services.anchors import Anchor, Side
from trimorph.services.config import build_config, configure_logging
from trimorph.services.engine import MorphingEngine, Role
from trimorph.services.errors import MorphError
from trimorph.services.overlay import Overlay
from trimorph.services.project import Project, load_project, save_project

logger = logging.getLogger(__name__)

# pane role -> which edge set and anchor phase its overlay shows
_EDGE_ROLE = {
    Role.SOURCE: ("source_edges", Role.SOURCE),
    Role.TARGET: ("target_edges", Role.TARGET),
}
_EDITABLE = {Role.SOURCE: Side.SOURCE, Role.TARGET: Side.TARGET}


def open_project(cfg, args) -> Project:
    path = Path(cfg.runtime.project) if cfg.runtime.project else None
    if path is not None and path.is_file():
        project = load_project(path)
    else:
        project = Project(path=path)

    # explicit images on the command line win over the project's
    if getattr(args, "source", None):
        project.source_image_path = Path(args.source)
    if getattr(args, "target", None):
        project.target_image_path = Path(args.target)
    return project


def MainController(args, panes, phase_slider=None, quality_slider=None, status_label=None):
    # Build configuration from command line arguments
    cfg = build_config(args)
    configure_logging(cfg.runtime.log_level)

    # Initialize engine and load the project
    engine = MorphingEngine(cfg.morph)
    project = open_project(cfg, args)
    try:
        engine.set_project(project)
    except (MorphError, OSError) as exc:
        # keep the session usable; anchors survive, images can be fixed later
        logger.error("Could not open project images: %s", exc)
        engine.set_anchors(project.anchors)

    overlays = {role: Overlay(cfg, pane) for role, pane in panes.items()}
    drag = {}

    def _anchor_points(phase, exclude=None):
        return [a.position(phase) for a in engine.anchors if a is not exclude]

    def _draw_overlay(role, pane):
        debug_key, edge_role = _EDGE_ROLE.get(role, ("current_edges", Role.OUTPUT))
        if role in _EDITABLE:
            phase = _EDITABLE[role].reference_phase
        else:
            phase = engine.phase

        selected = engine.selected_anchor
        instructions = [
            {
                "draw": "edges",
                "debug": debug_key,
                "edges": engine.get_triangle_edges(edge_role),
                "color": getattr(cfg.overlay, debug_key.replace("_edges", "_edge_color")),
                "width": cfg.overlay.edge_width,
            },
            {
                "draw": "points",
                "debug": "anchors",
                "location": _anchor_points(phase, exclude=selected),
                "color": cfg.overlay.anchor_color,
                "size": cfg.overlay.anchor_radius,
                "z": 1,
            },
        ]

        if selected is not None:
            position = selected.position(phase)
            if drag.get("pane") is pane:
                position = drag["position"]
            instructions.append(
                {
                    "draw": "points",
                    "debug": "anchors",
                    "group": "selected",
                    "location": [position],
                    "color": cfg.overlay.selected_anchor_color,
                    "size": cfg.overlay.anchor_radius * 1.5,
                    "z": 2,
                }
            )
        overlays[role].draw(instructions)

    def _refresh(*_dt):
        for role, pane in panes.items():
            pane.set_buffer(engine.get_image(role))
            _draw_overlay(role, pane)

        if status_label is not None:
            status_label.text = (
                f"phase {engine.phase:.2f} | quality {engine.quality.name.lower()} | "
                f"{len(engine.anchors)} anchors | {len(engine.mesh)} triangles"
            )

    # coalesce slider and touch events into one recompute per frame
    refresh = Clock.create_trigger(_refresh)

    def _on_phase(_instance, value):
        engine.set_phase(value)
        refresh()

    def _on_quality(_instance, value):
        engine.set_quality(int(round(value)))
        refresh()

    if phase_slider is not None:
        phase_slider.value = engine.phase
        phase_slider.bind(value=_on_phase)
    if quality_slider is not None:
        quality_slider.value = engine.quality.idx
        quality_slider.bind(value=_on_quality)

    # ------------------------------------------------------------------ #
    # Anchor editing on the source and target panes
    # ------------------------------------------------------------------ #
    def _on_touch_down(pane, touch):
        if not pane.collide_point(*touch.pos):
            return False
        point = pane.to_image(*touch.pos)
        if point is None:
            return False

        side = _EDITABLE[pane.role]
        radius = cfg.viewer.pick_radius / max(pane.display_scale, 1e-6)
        anchor = engine.find_anchor(point[0], point[1], side, radius)
        if anchor is None:
            anchor = engine.add_anchor(Anchor.at(point[0], point[1]))
            logger.info("Added anchor %d at (%.1f, %.1f)", anchor.id, point[0], point[1])
            engine.selected_anchor = anchor
            refresh()
            return True

        engine.selected_anchor = anchor
        drag.update(pane=pane, anchor=anchor, side=side, position=point)
        touch.grab(pane)
        refresh()
        return True

    def _on_touch_move(pane, touch):
        if touch.grab_current is not pane or drag.get("pane") is not pane:
            return False
        point = pane.to_image(*touch.pos)
        if point is not None:
            drag["position"] = point
            _draw_overlay(pane.role, pane)
        return True

    def _on_touch_up(pane, touch):
        if touch.grab_current is not pane or drag.get("pane") is not pane:
            return False
        touch.ungrab(pane)
        anchor, side, (x, y) = drag["anchor"], drag["side"], drag["position"]
        drag.clear()

        if side is Side.SOURCE:
            engine.move_anchor(anchor.id, source=(x, y))
        else:
            engine.move_anchor(anchor.id, target=(x, y))
        refresh()
        return True

    for role, pane in panes.items():
        if role in _EDITABLE:
            pane.bind(
                on_touch_down=_on_touch_down,
                on_touch_move=_on_touch_move,
                on_touch_up=_on_touch_up,
            )
        # overlays follow the picture when the layout changes
        pane.bind(size=lambda *_: refresh(), pos=lambda *_: refresh())

    refresh()

    # Shutdown sequence
    def shutdown():
        refresh.cancel()
        project = engine.project
        if cfg.runtime.autosave and project.path is not None:
            try:
                save_project(project)
            except (MorphError, OSError) as exc:
                logger.error("Failed to save project %s: %s", project.path, exc)

    return shutdown
