# Author: RD7
# Purpose: Exception types raised by the morphing services
# Created: 2026-10-05

from __future__ import annotations

__all__ = [
    "MorphError",
    "GeometryFailure",
    "DegenerateTriangle",
    "ImageBufferError",
    "ImageIOError",
    "ProjectError",
]


class MorphError(Exception):
    """Base class for all TriMorph errors."""


class GeometryFailure(MorphError):
    """The triangulation backend could not process the anchor configuration."""


class DegenerateTriangle(GeometryFailure):
    """A triangle with (near) zero area cannot define an affine map."""


class ImageBufferError(MorphError, ValueError):
    """An image buffer does not have a usable (H, W, C) uint8 layout."""


class ImageIOError(MorphError, OSError):
    """An image file could not be read or written."""


class ProjectError(MorphError, ValueError):
    """A project document is malformed."""
