"""선량 격자 및 기하 기본 타입."""

from .geometry import Point3d, Range
from .grid import DoseVolume, Voxel, VoxelGrid

__all__ = [
    "Point3d",
    "Range",
    "DoseVolume",
    "Voxel",
    "VoxelGrid",
]
