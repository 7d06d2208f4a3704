"""
Calibration modules for scanner-camera geometry.

This package provides the rigid transforms between the scanner, project and
global frames, the thermal camera model, and the frame-tagged transforms
used to move points between them.

Classes:
    RigidTransform: Rotation + translation between two frames.
    MountCalibration: Camera origin frame -> camera mount frame.
    CameraCalibration: Thermal camera intrinsics, distortion and extents.
    CalibratedPoint: Point (or chunk) tagged with its coordinate frame.
    Frame: SOCS, PRCS, GLCS, CMCS.

Standalone Functions:
    scanner_to_project, project_to_global: Output chain.
    global_to_project, project_to_scanner: Inverse output chain.
    scanner_to_camera_mount: SOCS -> CMCS.
    camera_to_image, camera_to_image_batch: CMCS -> pixel coordinates.

Example Usage:
    >>> from thermocolor.calibration import CalibratedPoint, scanner_to_project
    >>> socs = CalibratedPoint.socs(1.0, 2.0, 3.0)
    >>> prcs = scanner_to_project(socs, scan_position.sop)
"""

from .extrinsics import MountCalibration, RigidTransform
from .intrinsics import CameraCalibration
from .frames import (
    CalibratedPoint,
    Frame,
    global_to_project,
    project_to_global,
    project_to_scanner,
    scanner_to_camera_mount,
    scanner_to_project,
)
from .projection import (
    NOT_VISIBLE,
    Projected,
    camera_to_image,
    camera_to_image_batch,
)

__all__ = [
    # Classes
    "RigidTransform",
    "MountCalibration",
    "CameraCalibration",
    "CalibratedPoint",
    "Frame",
    "Projected",
    "NOT_VISIBLE",
    # Standalone functions
    "scanner_to_project",
    "project_to_global",
    "global_to_project",
    "project_to_scanner",
    "scanner_to_camera_mount",
    "camera_to_image",
    "camera_to_image_batch",
]
