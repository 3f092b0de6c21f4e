"""Interactive point cloud viewer with octree level of detail and eye-dome lighting."""

__version__ = "0.1.0"