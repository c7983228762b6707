# Author: RD7
# Purpose: Configuration settings for TriMorph
# Created: 2026-10-05

from __future__ import annotations

import logging
from dataclasses import dataclass, field

# Note: The source of truth for configurable default values is in the argument parsers
#       The source of truth for non-configurable default values is in the dataclass definitions


@dataclass
class RuntimeCfg:
    project: str | None = None
    log_level: str = "INFO"
    autosave: bool = True


@ dataclass
class DebugCfg:

    # current functionality: all debugs are on or off
    # if show_debug is flagged, then everything else defaults to True
    show_debug      :   bool | None = None
    source_edges    :   bool = True
    target_edges    :   bool = True
    current_edges   :   bool = True
    anchors         :   bool = True


@dataclass
class MorphCfg:
    """Warping engine configuration."""

    quality: str = "low"
    initial_phase: float = 0.5

    # triangulation backend: "delaunay" (scipy) or "subdiv" (opencv)
    triangulator: str = "delaunay"

    # max distance (per axis) for matching a triangle vertex to an anchor
    match_epsilon: float = 0.01

    # "forward" pushes source pixels (may leave holes), "inverse" pulls them
    warp_mode: str = "forward"

    # number of sample points pushed through the warp at once
    warp_chunk_size: int = 1 << 20


@dataclass
class OverlayCfg:
    source_edge_color   : str = "#00FF00"  # hex and RGB
    target_edge_color   : str = "#0000FF"
    current_edge_color  : str = "#FFFF00"
    edge_width          : float = 1.0

    anchor_color            : str = "#FF0000"
    selected_anchor_color   : str = "#FF00FF"
    anchor_radius           : float = 4.0


@dataclass
class ViewerCfg:
    width: int = 1200
    height: int = 800

    # touch distance (screen pixels) for grabbing an existing anchor
    pick_radius: float = 8.0


@dataclass
class Config:
    runtime: RuntimeCfg = field(default_factory=RuntimeCfg)
    debug: DebugCfg = field(default_factory=DebugCfg)
    morph: MorphCfg = field(default_factory=MorphCfg)
    overlay: OverlayCfg = field(default_factory=OverlayCfg)
    viewer: ViewerCfg = field(default_factory=ViewerCfg)


def build_config(args) -> Config:
    """Map parsed command line arguments onto a :class:`Config`.

    Both the viewer and the render tool call this; options one of them does
    not define keep their dataclass defaults.
    """
    cfg = Config()

    # runtime settings
    cfg.runtime.project = getattr(args, "project", None)
    cfg.runtime.log_level = getattr(args, "log_level", cfg.runtime.log_level)
    cfg.runtime.autosave = not getattr(args, "no_autosave", False)

    # engine settings
    cfg.morph.quality = args.quality
    cfg.morph.triangulator = args.triangulator
    cfg.morph.warp_mode = getattr(args, "warp_mode", cfg.morph.warp_mode)
    initial_phase = getattr(args, "initial_phase", None)
    if initial_phase is not None:
        cfg.morph.initial_phase = initial_phase

    # debugging settings
    cfg.debug.show_debug = getattr(args, "debug", False)

    return cfg


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
