"""Project model and LAS output."""

from .las_writer import OUTPUT_POINT_DTYPE, LasHeaderSpec, LasPointSink, OutputPoint
from .project import ImageRecord, Project, ScanPosition, load_name_map

__all__ = [
    "Project",
    "ScanPosition",
    "ImageRecord",
    "load_name_map",
    "LasPointSink",
    "LasHeaderSpec",
    "OutputPoint",
    "OUTPUT_POINT_DTYPE",
]
