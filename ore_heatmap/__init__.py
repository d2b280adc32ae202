"""Persistent ore density heatmap for voxel world maps."""

from .controller import HeatmapController
from .density_cache import DensityCacheStore
from .preferences import Preferences
from .world import ChunkKey

__version__ = "0.1.0"

__all__ = ["ChunkKey", "DensityCacheStore", "HeatmapController", "Preferences", "__version__"]
