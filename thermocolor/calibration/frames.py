"""
Coordinate Frames Module.

Points move through several coordinate systems on their way from the scanner
to the output file and into each thermal image:

    SOCS --SOP--> PRCS --POP--> GLCS          (output chain)
    SOCS --COP^-1, MOUNT--> CMCS --K--> ICS   (sampling chain)

Frames:
    SOCS: Scanner's Own Coordinate System, native frame of raw measurements.
    PRCS: Project Reference Coordinate System, after the scan position pose.
    GLCS: Global Coordinate System, after the project pose.
    CMCS: Camera Mount Coordinate System of one thermal camera.
    ICS:  Image Coordinate System, 2-D pixel space (see projection.py).

Every point carries the frame it is expressed in, and each transform only
accepts points from its source frame. Passing a point in the wrong frame is a
programming error and raises ``FrameError``.

All transforms here are pure functions of the point and a read-only
``RigidTransform``; they operate equally on a single point (3,) or a chunk
of points (N, 3).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

import numpy as np

from ..errors import FrameError
from .extrinsics import MountCalibration, RigidTransform


class Frame(Enum):
    """Coordinate frames a 3-D point can be expressed in."""

    SOCS = "socs"
    PRCS = "prcs"
    GLCS = "glcs"
    CMCS = "cmcs"


@dataclass(frozen=True)
class CalibratedPoint:
    """
    Point (or chunk of points) tagged with its coordinate frame.

    Attributes:
        xyz: Coordinates, (3,) for one point or (N, 3) for a chunk.
        frame: Frame the coordinates are expressed in.
    """

    xyz: np.ndarray
    frame: Frame

    @classmethod
    def socs(
        cls,
        x: Union[float, np.ndarray],
        y: Union[float, np.ndarray, None] = None,
        z: Union[float, np.ndarray, None] = None,
    ) -> "CalibratedPoint":
        """
        Tag scanner coordinates as SOCS.

        Accepts either three scalars/arrays or a single (3,) / (N, 3) array.
        """
        if y is None and z is None:
            xyz = np.asarray(x, dtype=np.float64)
        else:
            xyz = np.stack(np.broadcast_arrays(
                np.asarray(x, dtype=np.float64),
                np.asarray(y, dtype=np.float64),
                np.asarray(z, dtype=np.float64),
            ), axis=-1)
        if xyz.shape[-1] != 3 or xyz.ndim > 2:
            raise ValueError(f"Expected (3,) or (N, 3) coordinates, got {xyz.shape}")
        return cls(xyz=xyz, frame=Frame.SOCS)

    @property
    def x(self) -> Union[float, np.ndarray]:
        return self.xyz[..., 0]

    @property
    def y(self) -> Union[float, np.ndarray]:
        return self.xyz[..., 1]

    @property
    def z(self) -> Union[float, np.ndarray]:
        return self.xyz[..., 2]

    def __len__(self) -> int:
        return 1 if self.xyz.ndim == 1 else len(self.xyz)

    def select(self, mask: np.ndarray) -> "CalibratedPoint":
        """Subset a chunk with a boolean mask, keeping the frame tag."""
        return CalibratedPoint(xyz=np.atleast_2d(self.xyz)[mask], frame=self.frame)


def require_frame(point: CalibratedPoint, frame: Frame, operation: str) -> None:
    if point.frame is not frame:
        raise FrameError(
            f"{operation} expects a point in {frame.name}, got {point.frame.name}"
        )


def _apply(point: CalibratedPoint, transform: RigidTransform, frame: Frame) -> CalibratedPoint:
    return CalibratedPoint(xyz=transform.transform_points(point.xyz), frame=frame)


def scanner_to_project(point: CalibratedPoint, sop: RigidTransform) -> CalibratedPoint:
    """
    Transform SOCS coordinates into the project frame.

    Args:
        point: Point(s) in SOCS.
        sop: Scan position pose (SOCS -> PRCS).

    Returns:
        CalibratedPoint: Point(s) in PRCS.
    """
    require_frame(point, Frame.SOCS, "scanner_to_project")
    return _apply(point, sop, Frame.PRCS)


def project_to_global(point: CalibratedPoint, pop: RigidTransform) -> CalibratedPoint:
    """
    Transform project coordinates into the global frame.

    Args:
        point: Point(s) in PRCS.
        pop: Project pose (PRCS -> GLCS).

    Returns:
        CalibratedPoint: Point(s) in GLCS.
    """
    require_frame(point, Frame.PRCS, "project_to_global")
    return _apply(point, pop, Frame.GLCS)


def global_to_project(point: CalibratedPoint, pop: RigidTransform) -> CalibratedPoint:
    """Inverse of project_to_global()."""
    require_frame(point, Frame.GLCS, "global_to_project")
    return _apply(point, pop.inverse(), Frame.PRCS)


def project_to_scanner(point: CalibratedPoint, sop: RigidTransform) -> CalibratedPoint:
    """Inverse of scanner_to_project()."""
    require_frame(point, Frame.PRCS, "project_to_scanner")
    return _apply(point, sop.inverse(), Frame.SOCS)


def scanner_to_camera_mount(
    point: CalibratedPoint,
    cop: RigidTransform,
    mount: MountCalibration,
) -> CalibratedPoint:
    """
    Transform SOCS coordinates into a camera's mount frame.

    The camera pose (COP) locates the camera origin in SOCS, so its inverse
    brings scanner points into the camera origin frame; the mount
    calibration then maps them into CMCS:

        P_cmcs = MOUNT * COP^(-1) * P_socs

    Args:
        point: Point(s) in SOCS.
        cop: Camera pose of the image in SOCS.
        mount: Mount calibration of the camera.

    Returns:
        CalibratedPoint: Point(s) in CMCS.
    """
    require_frame(point, Frame.SOCS, "scanner_to_camera_mount")
    return _apply(point, cop.inverse().compose(mount.transform), Frame.CMCS)
