"""Image morphing methods for TriMorph (meshing, transforms, warping, blending)."""

from .mesh import (
    Mesh,
    Triangle,
    anchors_of,
    build_source_mesh,
    build_target_mesh,
    make_triangulator,
    triangle_edges,
)
from .affine import AffineTransform, build_transform
from .locate import locate, locate_many, point_in_triangle
from .warp import pull_warp, warp_image
from .blend import blend

__all__ = [
    "Mesh",
    "Triangle",
    "anchors_of",
    "build_source_mesh",
    "build_target_mesh",
    "make_triangulator",
    "triangle_edges",
    "AffineTransform",
    "build_transform",
    "locate",
    "locate_many",
    "point_in_triangle",
    "pull_warp",
    "warp_image",
    "blend",
]
