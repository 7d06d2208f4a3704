"""
Thermal Camera Calibration Module.

This module handles the intrinsic calibration of a thermal camera: focal
length, principal point, lens distortion and the angular extents outside of
which the calibration is not valid.

Mathematical Background:
========================

The camera intrinsic matrix K transforms 3D points in the camera mount
coordinate frame (CMCS) to 2D pixel coordinates:

    K = | fx   0  cx |
        |  0  fy  cy |
        |  0   0   1 |

Distortion (OpenCV model):
--------------------------
With normalized coordinates x' = X/Z, y' = Y/Z and r² = x'² + y'²:

    d  = 1 + k1 r² + k2 r⁴ + k3 r⁶ + k4 r⁸
    xd = d x' + 2 p1 x'y' + p2 (r² + 2 x'²)
    yd = d y' + p1 (r² + 2 y'²) + 2 p2 x'y'

    u = fx * xd + cx
    v = fy * yd + cy

Visibility:
-----------
A point can only be projected when it lies in front of the camera (Z > 0)
and inside the angular extents of the calibration:

    tan_min_horz <= X/Z <= tan_max_horz
    tan_min_vert <= Y/Z <= tan_max_vert

and the distorted pixel lies on the sensor (0 <= u < width, 0 <= v < height).
Extents outside of which the distortion polynomial folds back onto the
sensor must be supplied, otherwise far-off-axis points may project to
spurious pixels.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np


@dataclass
class CameraCalibration:
    """
    Thermal camera intrinsic calibration.

    Attributes:
        name: Calibration name as referenced by images.
        fx, fy: Focal lengths in pixels.
        cx, cy: Principal point in pixels.
        width, height: Sensor size in pixels.
        k1, k2, k3, k4: Radial distortion coefficients.
        p1, p2: Tangential distortion coefficients.
        tan_min_horz, tan_max_horz: Horizontal angular extents (tangent of angle).
        tan_min_vert, tan_max_vert: Vertical angular extents (tangent of angle).

    Example:
        >>> camera = CameraCalibration(name="thermal", fx=100.0, fy=100.0,
        ...                            cx=50.0, cy=50.0, width=100, height=100)
        >>> uv, visible = camera.project(np.array([[0.0, 0.0, 10.0]]))
        >>> uv[0], visible[0]
        (array([50., 50.]), True)
    """

    name: str
    fx: float
    fy: float
    cx: float
    cy: float
    width: int
    height: int
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    k4: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    tan_min_horz: Optional[float] = None
    tan_max_horz: Optional[float] = None
    tan_min_vert: Optional[float] = None
    tan_max_vert: Optional[float] = None

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Camera '{self.name}' must have positive size, got {self.width}x{self.height}"
            )
        if self.fx == 0 or self.fy == 0:
            raise ValueError(f"Camera '{self.name}' has a zero focal length")

    @property
    def K(self) -> np.ndarray:
        """Alias for get_K_matrix()."""
        return self.get_K_matrix()

    def get_K_matrix(self) -> np.ndarray:
        """
        Get the 3x3 camera intrinsic matrix.

        Returns:
            np.ndarray: 3x3 intrinsic matrix K with dtype float64.
        """
        return np.array([
            [self.fx, 0, self.cx],
            [0, self.fy, self.cy],
            [0, 0, 1]
        ], dtype=np.float64)

    def is_valid_angle(self, points_cmcs: np.ndarray) -> np.ndarray:
        """
        Check which points lie in front of the camera and inside the angular extents.

        Args:
            points_cmcs: Points (N, 3) in the camera mount frame.

        Returns:
            np.ndarray: Boolean mask (N,).
        """
        points_cmcs = np.atleast_2d(points_cmcs)
        z = points_cmcs[:, 2]
        valid = z > 0

        with np.errstate(divide="ignore", invalid="ignore"):
            tan_horz = points_cmcs[:, 0] / z
            tan_vert = points_cmcs[:, 1] / z

        if self.tan_min_horz is not None:
            valid &= tan_horz >= self.tan_min_horz
        if self.tan_max_horz is not None:
            valid &= tan_horz <= self.tan_max_horz
        if self.tan_min_vert is not None:
            valid &= tan_vert >= self.tan_min_vert
        if self.tan_max_vert is not None:
            valid &= tan_vert <= self.tan_max_vert

        return valid

    def is_in_image(self, points_2d: np.ndarray) -> np.ndarray:
        """
        Check if 2D points are on the sensor.

        The upper bounds are exclusive so that truncating a visible pixel
        coordinate always yields a valid raster index.

        Args:
            points_2d: 2D points (N, 2) in pixel coordinates.

        Returns:
            np.ndarray: Boolean mask (N,) indicating valid points.
        """
        points_2d = np.atleast_2d(points_2d)

        valid = (
            (points_2d[:, 0] >= 0) &
            (points_2d[:, 0] < self.width) &
            (points_2d[:, 1] >= 0) &
            (points_2d[:, 1] < self.height)
        )

        return valid

    def distort(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Apply radial and tangential distortion to normalized coordinates.

        Args:
            x: Normalized x' = X/Z values (N,).
            y: Normalized y' = Y/Z values (N,).

        Returns:
            Tuple[np.ndarray, np.ndarray]: Distorted (xd, yd).
        """
        r2 = x * x + y * y
        radial = 1 + r2 * (self.k1 + r2 * (self.k2 + r2 * (self.k3 + r2 * self.k4)))
        xy2 = 2 * x * y
        xd = radial * x + self.p1 * xy2 + self.p2 * (r2 + 2 * x * x)
        yd = radial * y + self.p1 * (r2 + 2 * y * y) + self.p2 * xy2
        return xd, yd

    def project(self, points_cmcs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Project CMCS points to pixel coordinates.

        Args:
            points_cmcs: Points (N, 3) or (3,) in the camera mount frame.

        Returns:
            Tuple[np.ndarray, np.ndarray]:
                - points_2d: Pixel coordinates (N, 2); NaN where not visible
                - visible: Boolean mask (N,)
        """
        points_cmcs = np.atleast_2d(np.asarray(points_cmcs, dtype=np.float64))
        visible = self.is_valid_angle(points_cmcs)

        points_2d = np.full((len(points_cmcs), 2), np.nan)
        if not visible.any():
            return points_2d, visible

        candidates = points_cmcs[visible]
        x = candidates[:, 0] / candidates[:, 2]
        y = candidates[:, 1] / candidates[:, 2]
        xd, yd = self.distort(x, y)

        projected = np.stack([self.fx * xd + self.cx, self.fy * yd + self.cy], axis=1)
        on_sensor = self.is_in_image(projected)

        indices = np.flatnonzero(visible)
        visible[indices[~on_sensor]] = False
        points_2d[indices[on_sensor]] = projected[on_sensor]

        return points_2d, visible

    @classmethod
    def from_config(cls, name: str, entry: Dict[str, Any]) -> "CameraCalibration":
        """
        Create from a project file ``cameras`` entry.

        Expected layout::

            width: 640
            height: 480
            intrinsics: {fx: ..., fy: ..., cx: ..., cy: ...}
            distortion: {k1: ..., k2: ..., k3: ..., k4: ..., p1: ..., p2: ...}
            angle_extents: {tan_min_horz: ..., tan_max_horz: ...,
                            tan_min_vert: ..., tan_max_vert: ...}

        Raises:
            KeyError: If a required intrinsic parameter is missing.
        """
        intrinsics = entry["intrinsics"]
        distortion = entry.get("distortion") or {}
        extents = entry.get("angle_extents") or {}

        return cls(
            name=name,
            fx=float(intrinsics["fx"]),
            fy=float(intrinsics["fy"]),
            cx=float(intrinsics["cx"]),
            cy=float(intrinsics["cy"]),
            width=int(entry["width"]),
            height=int(entry["height"]),
            k1=float(distortion.get("k1", 0.0)),
            k2=float(distortion.get("k2", 0.0)),
            k3=float(distortion.get("k3", 0.0)),
            k4=float(distortion.get("k4", 0.0)),
            p1=float(distortion.get("p1", 0.0)),
            p2=float(distortion.get("p2", 0.0)),
            tan_min_horz=_optional_float(extents.get("tan_min_horz")),
            tan_max_horz=_optional_float(extents.get("tan_max_horz")),
            tan_min_vert=_optional_float(extents.get("tan_min_vert")),
            tan_max_vert=_optional_float(extents.get("tan_max_vert")),
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"CameraCalibration(name={self.name!r}, fx={self.fx:.2f}, fy={self.fy:.2f}, "
            f"cx={self.cx:.2f}, cy={self.cy:.2f}, "
            f"width={self.width}, height={self.height})"
        )


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
