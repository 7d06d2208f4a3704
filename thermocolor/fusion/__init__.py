"""
Thermal fusion modules.

Classes:
    ImageBinding: Thermal image bound to its camera, mount and pose.
    TemperatureAggregator: Averages the samples of overlapping images.
    ColorGradient, AttributeMapper: Intensity and display color mapping.
    StreamingColorizer: Streams point files through the pipeline into LAS.
    ColorizeConfig: Run configuration.
"""

from .aggregator import NO_DATA, Measured, TemperatureAggregator
from .attributes import AttributeMapper, ColorGradient
from .binding import ImageBinding
from .colorizer import (
    ColorizeConfig,
    FileErrorPolicy,
    FileSummary,
    OutputNaming,
    RunSummary,
    StreamingColorizer,
)

__all__ = [
    "ImageBinding",
    "TemperatureAggregator",
    "Measured",
    "NO_DATA",
    "ColorGradient",
    "AttributeMapper",
    "StreamingColorizer",
    "ColorizeConfig",
    "OutputNaming",
    "FileErrorPolicy",
    "FileSummary",
    "RunSummary",
]
