"""Sensor modules for thermal image and LiDAR point stream loading."""

from .lidar import POINT_EXTENSIONS, RAW_POINT_DTYPE, PointStream, RawPoint
from .thermal import RASTER_EXTENSIONS, ThermalImage

__all__ = [
    "PointStream",
    "RawPoint",
    "RAW_POINT_DTYPE",
    "POINT_EXTENSIONS",
    "ThermalImage",
    "RASTER_EXTENSIONS",
]
