"""Thermal image reader for radiometric rasters."""

from pathlib import Path
from typing import Union

import cv2
import numpy as np

from ..errors import RasterLookupError

# Picked up from image directories by default; ThermalImage also reads any
# other format OpenCV decodes, such as .png.
RASTER_EXTENSIONS = (".tif", ".tiff", ".npy")


class ThermalImage:
    """
    Radiometric thermal raster holding absolute temperatures in Kelvin.

    Pixel (u, v) addresses column u and row v, with the origin at the top-left
    corner of the image.
    """

    def __init__(
        self,
        grid: np.ndarray,
        path: Union[str, Path, None] = None,
        kelvin_scale: float = 1.0,
        kelvin_offset: float = 0.0,
    ):
        """
        Initialize a thermal image from a raster.

        Args:
            grid: Single-channel raster (H, W) of raw values.
            path: Source file, for messages.
            kelvin_scale: Multiplier converting raw values to Kelvin.
            kelvin_offset: Offset added after scaling.
        """
        grid = np.asarray(grid)
        if grid.ndim == 3 and grid.shape[2] == 1:
            grid = grid[:, :, 0]
        if grid.ndim != 2:
            raise ValueError(
                f"Thermal raster must be single-channel (H, W), got shape {grid.shape}"
            )

        self.path = Path(path) if path is not None else None
        self.grid = grid.astype(np.float64) * kelvin_scale + kelvin_offset

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        kelvin_scale: float = 1.0,
        kelvin_offset: float = 0.0,
    ) -> "ThermalImage":
        """
        Load a thermal image from disk.

        ``.npy`` files are read with numpy; other formats with OpenCV, keeping
        their native bit depth (16-bit and float TIFFs are common exports of
        radiometric cameras).

        Args:
            path: Raster file path.
            kelvin_scale: Multiplier converting raw values to Kelvin.
            kelvin_offset: Offset added after scaling.

        Returns:
            ThermalImage instance.

        Raises:
            FileNotFoundError: If the file does not exist.
            IOError: If the file cannot be decoded.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Thermal image not found: {path}")

        if path.suffix.lower() == ".npy":
            grid = np.load(str(path))
        else:
            grid = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
            if grid is None:
                raise IOError(f"Failed to load thermal image: {path}")

        return cls(grid, path=path, kelvin_scale=kelvin_scale, kelvin_offset=kelvin_offset)

    @property
    def width(self) -> int:
        return self.grid.shape[1]

    @property
    def height(self) -> int:
        return self.grid.shape[0]

    def temperature(self, u: int, v: int) -> float:
        """
        Get the absolute temperature at a pixel.

        Args:
            u: Column index.
            v: Row index.

        Returns:
            Temperature in Kelvin.

        Raises:
            RasterLookupError: If (u, v) lies outside the raster.
        """
        if not (0 <= u < self.width and 0 <= v < self.height):
            raise RasterLookupError(
                f"Pixel ({u}, {v}) outside {self.width}x{self.height} raster {self.path}"
            )
        return float(self.grid[v, u])

    def temperatures(self, u: np.ndarray, v: np.ndarray) -> np.ndarray:
        """
        Vectorized temperature lookup.

        Args:
            u: Column indices (N,).
            v: Row indices (N,).

        Returns:
            np.ndarray: Temperatures in Kelvin (N,).

        Raises:
            RasterLookupError: If any pixel lies outside the raster.
        """
        u = np.asarray(u, dtype=np.int64)
        v = np.asarray(v, dtype=np.int64)

        outside = (u < 0) | (u >= self.width) | (v < 0) | (v >= self.height)
        if outside.any():
            first = int(np.flatnonzero(outside)[0])
            raise RasterLookupError(
                f"{int(outside.sum())} pixel(s) outside {self.width}x{self.height} raster "
                f"{self.path}, first at ({u[first]}, {v[first]})"
            )
        return self.grid[v, u]

    def __repr__(self) -> str:
        return f"ThermalImage(path={self.path}, width={self.width}, height={self.height})"
