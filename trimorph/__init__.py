"""TriMorph: anchor-driven triangle-mesh image morphing."""

__version__ = "0.1.0"
