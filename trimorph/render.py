# Author: RD7
# Purpose: Headless rendering of morph frames from a project file
# Created: 2026-10-10

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from trimorph.services.config import build_config, configure_logging
from trimorph.services.engine import MorphingEngine, Role
from trimorph.services.errors import MorphError
from trimorph.services.image_io import save_image
from trimorph.services.project import load_project

logger = logging.getLogger(__name__)

_ROLES = {
    "output": Role.OUTPUT,
    "source_warped": Role.SOURCE_WARPED,
    "target_warped": Role.TARGET_WARPED,
}


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="trimorph-render",
        description="Render morph frames for a TriMorph project without the viewer.",
    )

    # Note: defaults here are the source of truth for default values

    p.add_argument('project',
                   help='Project file (JSON) with image paths and anchors')

    p.add_argument('--phase',
                   type=float,
                   action='append',
                   help='Phase in [0, 1] to render; repeat for several frames (default: 0.5)')

    p.add_argument('--frames',
                   type=int,
                   default=None,
                   help='Render this many evenly spaced phases from 0 to 1 instead of --phase')

    p.add_argument('--quality',
                   choices=["low", "medium", "high"],
                   default="low",
                   help='Warp sampling density')

    p.add_argument('--triangulator',
                   choices=["delaunay", "subdiv"],
                   default="delaunay",
                   help='Triangulation backend')

    p.add_argument('--warp-mode',
                   choices=["forward", "inverse"],
                   default="forward",
                   help='Push source pixels forward (default, may leave holes) or pull them')

    p.add_argument('--role',
                   choices=sorted(_ROLES),
                   default="output",
                   help='Which buffer to write')

    p.add_argument('--out',
                   default="frame_{index:03d}.png",
                   help='Output path pattern; {index} and {phase} are substituted')

    p.add_argument('--log-level',
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   default="INFO",
                   help='Logging verbosity')

    args = p.parse_args(argv)
    if args.frames is not None and args.frames < 1:
        p.error("--frames must be at least 1")
    return args


def phases_from_args(args) -> list[float]:
    if args.frames is not None:
        if args.frames == 1:
            return [0.0]
        return [i / (args.frames - 1) for i in range(args.frames)]
    return args.phase or [0.5]


def render(args) -> list[Path]:
    cfg = build_config(args)
    engine = MorphingEngine(cfg.morph)
    engine.set_project(load_project(args.project))

    role = _ROLES[args.role]
    written = []
    for index, phase in enumerate(phases_from_args(args)):
        engine.set_phase(phase)
        buffer = engine.get_image(role)
        if buffer is None:
            logger.warning("No %s image at phase %.3f (missing input image?)", args.role, phase)
            continue
        out = Path(args.out.format(index=index, phase=phase))
        written.append(save_image(out, buffer))
    return written


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        written = render(args)
    except (MorphError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    logger.info("Rendered %d frame(s)", len(written))
    return 0 if written else 1


if __name__ == "__main__":
    sys.exit(main())
