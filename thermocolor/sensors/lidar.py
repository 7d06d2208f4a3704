"""LiDAR point stream reader for scanner-frame point clouds."""

import logging
from pathlib import Path
from typing import Iterator, NamedTuple, Optional, Union

import laspy
import numpy as np

from ..errors import PointStreamError

logger = logging.getLogger(__name__)

RAW_POINT_DTYPE = np.dtype([
    ("x", np.float64),
    ("y", np.float64),
    ("z", np.float64),
    ("reflectance", np.float32),
])

POINT_EXTENSIONS = (".bin", ".las", ".laz")


class RawPoint(NamedTuple):
    """One scanner measurement in SOCS."""

    x: float
    y: float
    z: float
    reflectance: float


class PointStream:
    """
    Lazy, forward-only stream of raw scanner points.

    Supported inputs:
        - ``.bin``: sequence of float32 records [x, y, z, reflectance]
          (16 bytes per point), read through a memory map.
        - ``.las`` / ``.laz``: read with laspy's chunk iterator. Reflectance
          comes from a ``reflectance`` extra dimension when present, otherwise
          from the intensity field.

    Points are produced in file order, in chunks of at most ``chunk_size``
    points. A stream can only be iterated once; reopen the file to restart.
    """

    def __init__(
        self,
        path: Union[str, Path],
        sync_to_pps: bool = False,
        chunk_size: int = 100_000,
    ):
        """
        Initialize the point stream.

        Args:
            path: Point cloud file.
            sync_to_pps: Only produce points synced to an external PPS time
                source (points carrying a non-zero GPS time).
            chunk_size: Maximum number of points per chunk.
        """
        self.path = Path(path)
        self.sync_to_pps = sync_to_pps
        self.chunk_size = chunk_size

        self._reader: Optional[laspy.LasReader] = None
        self._records: Optional[np.ndarray] = None
        self._consumed = False

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        sync_to_pps: bool = False,
        chunk_size: int = 100_000,
    ) -> "PointStream":
        """
        Open a point stream.

        Raises:
            PointStreamError: If the file is missing, has an unsupported
                format, or cannot honour ``sync_to_pps``.
        """
        stream = cls(path, sync_to_pps=sync_to_pps, chunk_size=chunk_size)
        stream._open()
        return stream

    def _open(self) -> None:
        if not self.path.exists():
            raise PointStreamError(f"Point cloud not found: {self.path}")
        if self.chunk_size <= 0:
            raise PointStreamError(f"chunk_size must be positive, got {self.chunk_size}")

        suffix = self.path.suffix.lower()
        if suffix == ".bin":
            self._open_bin()
        elif suffix in (".las", ".laz"):
            self._open_las()
        else:
            raise PointStreamError(
                f"Unsupported point cloud format '{suffix}': {self.path} "
                f"(expected one of {', '.join(POINT_EXTENSIONS)})"
            )

    def _open_bin(self) -> None:
        if self.sync_to_pps:
            raise PointStreamError(
                f"{self.path} carries no timing information, cannot sync to PPS"
            )

        size = self.path.stat().st_size
        if size % 16 != 0:
            raise PointStreamError(
                f"{self.path} size {size} is not a multiple of 16-byte point records"
            )
        if size == 0:
            self._records = np.empty((0, 4), dtype=np.float32)
        else:
            self._records = np.memmap(str(self.path), dtype=np.float32, mode="r").reshape(-1, 4)
        logger.debug(f"Mapped {self.path} ({len(self._records)} points)")

    def _open_las(self) -> None:
        try:
            self._reader = laspy.open(str(self.path))
        except (OSError, laspy.errors.LaspyException) as exc:
            raise PointStreamError(f"Failed to open point cloud {self.path}: {exc}") from exc

        dimensions = set(self._reader.header.point_format.dimension_names)
        if self.sync_to_pps and "gps_time" not in dimensions:
            self.close()
            raise PointStreamError(
                f"{self.path} has no GPS time field, cannot sync to PPS"
            )
        logger.debug(
            f"Opened {self.path} (LAS {self._reader.header.version}, "
            f"{self._reader.header.point_count} points)"
        )

    def __len__(self) -> int:
        """Number of records in the file (before any PPS filtering)."""
        if self._records is not None:
            return len(self._records)
        if self._reader is not None:
            return int(self._reader.header.point_count)
        return 0

    def iter_chunks(self) -> Iterator[np.ndarray]:
        """
        Iterate over the stream in chunks.

        Yields:
            Structured arrays with dtype ``RAW_POINT_DTYPE``.

        Raises:
            PointStreamError: On read failure, or if the stream was already consumed.
        """
        if self._consumed:
            raise PointStreamError(f"Point stream {self.path} was already consumed")
        self._consumed = True

        if self._records is not None:
            yield from self._iter_bin_chunks()
        elif self._reader is not None:
            yield from self._iter_las_chunks()
        else:
            raise PointStreamError(f"Point stream {self.path} is not open")

    def _iter_bin_chunks(self) -> Iterator[np.ndarray]:
        for start in range(0, len(self._records), self.chunk_size):
            block = np.asarray(self._records[start:start + self.chunk_size])
            chunk = np.empty(len(block), dtype=RAW_POINT_DTYPE)
            chunk["x"] = block[:, 0]
            chunk["y"] = block[:, 1]
            chunk["z"] = block[:, 2]
            chunk["reflectance"] = block[:, 3]
            yield chunk

    def _iter_las_chunks(self) -> Iterator[np.ndarray]:
        dimensions = set(self._reader.header.point_format.dimension_names)
        reflectance_field = "reflectance" if "reflectance" in dimensions else "intensity"

        try:
            for points in self._reader.chunk_iterator(self.chunk_size):
                if self.sync_to_pps:
                    points = points[np.asarray(points.gps_time) != 0]

                chunk = np.empty(len(points), dtype=RAW_POINT_DTYPE)
                chunk["x"] = np.asarray(points.x, dtype=np.float64)
                chunk["y"] = np.asarray(points.y, dtype=np.float64)
                chunk["z"] = np.asarray(points.z, dtype=np.float64)
                chunk["reflectance"] = np.asarray(points[reflectance_field], dtype=np.float32)
                yield chunk
        except (OSError, ValueError, laspy.errors.LaspyException) as exc:
            raise PointStreamError(f"Failed to read point cloud {self.path}: {exc}") from exc

    def __iter__(self) -> Iterator[RawPoint]:
        """Iterate point by point."""
        for chunk in self.iter_chunks():
            for record in chunk:
                yield RawPoint(
                    float(record["x"]),
                    float(record["y"]),
                    float(record["z"]),
                    float(record["reflectance"]),
                )

    def close(self) -> None:
        """Release the underlying file."""
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        # Dropping the last reference unmaps a .bin file.
        self._records = None

    def __enter__(self) -> "PointStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"PointStream(path={self.path}, sync_to_pps={self.sync_to_pps})"
