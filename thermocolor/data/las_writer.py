"""
LAS Point Sink.

Writes colorized points to LAS files with laspy.

LAS Point Format 3:
===================
    X, Y, Z:    int32 scaled coordinates, value = X * scale + offset
    intensity:  uint16
    gps_time:   float64, used here to carry the temperature in °C
    red, green, blue: uint16

Coordinates are stored at millimeter resolution (scale 0.001) with the offset
taken from the project's global translation, which keeps the stored integers
small near the scan origin.

Points are accepted one at a time (or as chunks) and flushed to disk in
blocks; header bounds and point counts are finalized when the sink closes.
Chunks carry 16-bit LAS colors; single points carry 8-bit display colors,
widened on write.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import laspy
import numpy as np

from ..errors import PointSinkError

logger = logging.getLogger(__name__)

# 8-bit display colors are widened so that 255 maps to 65535.
COLOR_8_TO_16 = 257

# Colors are 16-bit LAS values.
OUTPUT_POINT_DTYPE = np.dtype([
    ("x", np.float64),
    ("y", np.float64),
    ("z", np.float64),
    ("intensity", np.uint16),
    ("red", np.uint16),
    ("green", np.uint16),
    ("blue", np.uint16),
    ("temperature", np.float64),
])


def widen_color(channel: np.ndarray) -> np.ndarray:
    """Widen 8-bit channel values to the 16-bit LAS range."""
    return (np.asarray(channel, dtype=np.uint32) * COLOR_8_TO_16).astype(np.uint16)


@dataclass
class OutputPoint:
    """
    One colorized point ready to be written.

    Attributes:
        x, y, z: Coordinates in GLCS.
        intensity: Rescaled reflectance.
        color: Display color as an 8-bit (r, g, b) triple, or None.
        temperature: Temperature in °C, NaN when no thermal data.
    """

    x: float
    y: float
    z: float
    intensity: int
    color: Optional[Tuple[int, int, int]]
    temperature: float


@dataclass
class LasHeaderSpec:
    """
    Output header description.

    Attributes:
        offsets: Per-axis coordinate offsets.
        scales: Per-axis coordinate scales.
        point_format: LAS point format id; must carry RGB and GPS time.
        version: LAS version string.
    """

    offsets: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    scales: Tuple[float, float, float] = (0.001, 0.001, 0.001)
    point_format: int = 3
    version: str = "1.2"

    @classmethod
    def from_translation(cls, translation: Sequence[float], scale: float = 0.001) -> "LasHeaderSpec":
        """Header with ``scale`` on every axis and offsets at ``translation``."""
        offsets = tuple(float(value) for value in translation)
        return cls(offsets=offsets, scales=(scale, scale, scale))

    def to_laspy(self) -> laspy.LasHeader:
        """
        Build the laspy header.

        Raises:
            PointSinkError: If the point format lacks RGB or GPS time.
        """
        header = laspy.LasHeader(point_format=self.point_format, version=self.version)
        dimensions = set(header.point_format.dimension_names)
        missing = {"red", "green", "blue", "gps_time"} - dimensions
        if missing:
            raise PointSinkError(
                f"LAS point format {self.point_format} lacks {sorted(missing)}"
            )
        header.offsets = np.array(self.offsets, dtype=np.float64)
        header.scales = np.array(self.scales, dtype=np.float64)
        return header


class LasPointSink:
    """Exclusive writer for one LAS output file."""

    def __init__(
        self,
        path: Union[str, Path],
        header: LasHeaderSpec,
        buffer_size: int = 100_000,
    ):
        """
        Initialize the sink.

        Args:
            path: Output file path.
            header: Header description.
            buffer_size: Points held before a block is written.
        """
        self.path = Path(path)
        self.header = header
        self.buffer_size = buffer_size
        self.points_written = 0

        self._writer: Optional[laspy.LasWriter] = None
        self._laspy_header: Optional[laspy.LasHeader] = None
        self._buffer = np.empty(buffer_size, dtype=OUTPUT_POINT_DTYPE)
        self._buffered = 0

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        header: LasHeaderSpec,
        buffer_size: int = 100_000,
    ) -> "LasPointSink":
        """
        Open a sink, creating (or truncating) the output file.

        Raises:
            PointSinkError: If the file cannot be created.
        """
        sink = cls(path, header, buffer_size=buffer_size)
        sink._open()
        return sink

    def _open(self) -> None:
        if self.buffer_size <= 0:
            raise PointSinkError(f"buffer_size must be positive, got {self.buffer_size}")

        self._laspy_header = self.header.to_laspy()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = laspy.open(str(self.path), mode="w", header=self._laspy_header)
        except (OSError, laspy.errors.LaspyException) as exc:
            raise PointSinkError(f"Failed to open LAS output {self.path}: {exc}") from exc
        logger.debug(f"Opened LAS output {self.path}")

    @property
    def closed(self) -> bool:
        return self._writer is None

    def write(self, point: OutputPoint) -> None:
        """Append one point."""
        self._require_open()
        red, green, blue = widen_color(point.color if point.color is not None else (0, 0, 0))
        self._buffer[self._buffered] = (
            point.x, point.y, point.z, point.intensity, red, green, blue, point.temperature,
        )
        self._buffered += 1

        if self._buffered == self.buffer_size:
            self.flush()

    def write_chunk(self, points: np.ndarray) -> None:
        """
        Append a chunk of points in order.

        Args:
            points: Structured array with dtype ``OUTPUT_POINT_DTYPE``,
                colors already 16-bit.
        """
        self._require_open()
        start = 0
        while start < len(points):
            count = min(self.buffer_size - self._buffered, len(points) - start)
            self._buffer[self._buffered:self._buffered + count] = points[start:start + count]
            self._buffered += count
            start += count

            if self._buffered == self.buffer_size:
                self.flush()

    def flush(self) -> None:
        """
        Write buffered points to disk.

        Raises:
            PointSinkError: If the block cannot be encoded or written.
        """
        self._require_open()
        if self._buffered == 0:
            return

        block = self._buffer[:self._buffered]
        record = laspy.ScaleAwarePointRecord.zeros(len(block), header=self._laspy_header)
        try:
            # Coordinates that do not fit int32 at the header scale overflow here.
            record.x = block["x"]
            record.y = block["y"]
            record.z = block["z"]
            record.intensity = block["intensity"]
            record.red = block["red"]
            record.green = block["green"]
            record.blue = block["blue"]
            record.gps_time = block["temperature"]
            self._writer.write_points(record)
        except (OSError, OverflowError, ValueError, laspy.errors.LaspyException) as exc:
            raise PointSinkError(f"Failed to write LAS output {self.path}: {exc}") from exc

        self.points_written += len(block)
        self._buffered = 0

    def close(self) -> None:
        """Flush remaining points and finalize the header."""
        if self._writer is None:
            return
        try:
            self.flush()
            self._writer.close()
        except (OSError, laspy.errors.LaspyException) as exc:
            # The writer stays set so abort() can release it.
            raise PointSinkError(f"Failed to finalize LAS output {self.path}: {exc}") from exc
        self._writer = None
        logger.debug(f"Closed LAS output {self.path} ({self.points_written} points)")

    def abort(self) -> None:
        """Close without finalizing and remove the partial file."""
        writer, self._writer = self._writer, None
        self._buffered = 0
        if writer is not None:
            try:
                writer.close()
            except (OSError, laspy.errors.LaspyException) as exc:
                logger.debug(f"Ignoring close failure on aborted output {self.path}: {exc}")
        if self.path.exists():
            self.path.unlink()
            logger.warning(f"Removed partial LAS output {self.path}")

    def _require_open(self) -> None:
        if self._writer is None:
            raise PointSinkError(f"LAS output {self.path} is closed")

    def __enter__(self) -> "LasPointSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.abort()
            return
        try:
            self.close()
        except PointSinkError:
            self.abort()
            raise
