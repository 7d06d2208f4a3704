"""
Camera Projection Module.

Maps points from a camera's mount frame (CMCS) to pixel coordinates in the
image frame (ICS). Unlike the rigid transforms in frames.py the projection
can legitimately fail: the point may be behind the camera, outside the
calibrated angular extents, or off the sensor. Those outcomes are frequent
and expected, so they are returned as ``NOT_VISIBLE`` rather than raised.

Pinhole Camera Model:
---------------------

    [u]       [X]       [fx  0  cx] [xd]
    [v] = K * [Y] / Z = [ 0 fy  cy] [yd]
    [1]       [Z]       [ 0  0   1] [ 1]

where (xd, yd) are the distorted normalized coordinates, see intrinsics.py.
"""

from typing import NamedTuple, Tuple, Union

import numpy as np

from .frames import CalibratedPoint, Frame, require_frame
from .intrinsics import CameraCalibration


class Projected(NamedTuple):
    """A point that landed on the sensor at pixel (u, v)."""

    u: float
    v: float


class _NotVisible:
    """A point that does not project into the image."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_VISIBLE"


NOT_VISIBLE = _NotVisible()

ProjectionResult = Union[Projected, _NotVisible]


def camera_to_image(point: CalibratedPoint, camera: CameraCalibration) -> ProjectionResult:
    """
    Project a single CMCS point into the image.

    Args:
        point: One point in CMCS.
        camera: Camera calibration.

    Returns:
        ``Projected(u, v)`` or ``NOT_VISIBLE``.

    Example:
        >>> camera = CameraCalibration(name="t", fx=100.0, fy=100.0, cx=50.0, cy=50.0,
        ...                            width=100, height=100)
        >>> camera_to_image(CalibratedPoint(np.array([0.0, 0.0, 10.0]), Frame.CMCS), camera)
        Projected(u=50.0, v=50.0)
    """
    require_frame(point, Frame.CMCS, "camera_to_image")
    if point.xyz.ndim != 1:
        raise ValueError("camera_to_image takes one point; use camera_to_image_batch")

    points_2d, visible = camera.project(point.xyz)
    if not visible[0]:
        return NOT_VISIBLE
    return Projected(float(points_2d[0, 0]), float(points_2d[0, 1]))


def camera_to_image_batch(
    points: CalibratedPoint,
    camera: CameraCalibration,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Project a chunk of CMCS points into the image.

    Args:
        points: Points (N, 3) in CMCS.
        camera: Camera calibration.

    Returns:
        Tuple[np.ndarray, np.ndarray]:
            - points_2d: Pixel coordinates (N, 2), NaN where not visible
            - visible: Boolean mask (N,)
    """
    require_frame(points, Frame.CMCS, "camera_to_image_batch")
    return camera.project(points.xyz)
