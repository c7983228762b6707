# Author: RD7
# Purpose: Project documents (image paths + anchor list) stored as JSON
# Created: 2026-10-07

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from trimorph.services.anchors import Anchor
from trimorph.services.errors import ProjectError

logger = logging.getLogger(__name__)

__all__ = ["Project", "load_project", "save_project", "PROJECT_VERSION"]

PROJECT_VERSION = 1


@dataclass
class Project:
    source_image_path: Path | None = None
    target_image_path: Path | None = None
    anchors: list[Anchor] = field(default_factory=list)
    path: Path | None = None


def _resolve(base: Path, value: str | None) -> Path | None:
    if not value:
        return None
    candidate = Path(value)
    return candidate if candidate.is_absolute() else (base / candidate)


def _relativize(base: Path, value: Path | None) -> str | None:
    if value is None:
        return None
    try:
        return Path(os.path.relpath(Path(value).resolve(), base.resolve())).as_posix()
    except ValueError:
        # different drive on Windows
        return str(value)


def _parse_anchor(raw: object, position: int) -> Anchor:
    if not isinstance(raw, dict):
        raise ProjectError(f"anchor #{position} must be an object")
    try:
        source = [float(v) for v in raw["source"]]
        target = [float(v) for v in raw["target"]]
        anchor_id = raw.get("id", position)
        anchor_id = None if anchor_id is None else int(anchor_id)
        if len(source) != 2 or len(target) != 2:
            raise ValueError("positions must be [x, y] pairs")
        return Anchor.between(source, target, id=anchor_id)
    except (KeyError, TypeError, ValueError) as exc:
        raise ProjectError(f"anchor #{position} is malformed: {exc}") from exc


def load_project(path: str | Path) -> Project:
    """Read a project file; image paths are resolved relative to it."""

    path = Path(path)
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ProjectError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise ProjectError(f"{path} must contain a JSON object")

    version = doc.get("version", PROJECT_VERSION)
    if version != PROJECT_VERSION:
        raise ProjectError(f"Unsupported project version {version!r}")

    raw_anchors = doc.get("anchors", [])
    if not isinstance(raw_anchors, list):
        raise ProjectError("'anchors' must be a list")

    anchors = [_parse_anchor(raw, idx) for idx, raw in enumerate(raw_anchors)]
    ids = [a.id for a in anchors]
    if len(set(ids)) != len(ids):
        raise ProjectError("anchor ids must be unique")

    base = path.parent
    project = Project(
        source_image_path=_resolve(base, doc.get("source_image")),
        target_image_path=_resolve(base, doc.get("target_image")),
        anchors=anchors,
        path=path,
    )
    logger.info("Loaded project %s with %d anchors", path, len(anchors))
    return project


def save_project(project: Project, path: str | Path | None = None) -> Path:
    """Write *project* as JSON to *path* (defaults to ``project.path``)."""

    target = Path(path) if path is not None else project.path
    if target is None:
        raise ValueError("no path given for saving the project")

    base = target.parent
    doc = {
        "version": PROJECT_VERSION,
        "source_image": _relativize(base, project.source_image_path),
        "target_image": _relativize(base, project.target_image_path),
        "anchors": [
            {
                "id": a.id,
                "source": [a.source_x, a.source_y],
                "target": [a.target_x, a.target_y],
            }
            for a in project.anchors
        ],
    }

    base.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(doc, indent=2), encoding="utf-8")
    project.path = target
    logger.info("Saved project %s", target)
    return target
