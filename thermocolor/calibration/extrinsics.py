"""
Rigid Transformation Module.

This module handles the rigid transforms that link the coordinate frames of
a terrestrial laser scanning project: the scanner's own pose in the project
(SOP), the project's pose in the global frame (POP), each thermal image's
camera pose relative to the scanner (COP) and the camera mount calibration.

Mathematical Background:
========================

Rigid Body Transformation:
--------------------------
A rigid body transformation consists of a rotation R (3x3 orthonormal matrix)
and translation t (3x1 vector). For a point P in frame A, its coordinates
in frame B are:

    P_B = R * P_A + t

This can be written as a 4x4 homogeneous transformation matrix:

    T = | R   t |    where T transforms points: P_B = T * P_A (homogeneous)
        | 0   1 |

Inverse Transformation:
-----------------------
The inverse transformation (from B to A) is:

    T^(-1) = | R^T  -R^T * t |
             |  0       1    |

Since R is orthonormal: R^(-1) = R^T

Project Transforms:
===================

    SOP: Scanner Own Coordinate System (SOCS) -> Project (PRCS)
    POP: Project (PRCS) -> Global (GLCS)
    COP: Camera pose in SOCS; its inverse maps SOCS -> camera origin frame
    MOUNT: Camera origin frame -> Camera Mount Coordinate System (CMCS)

Complete scanner to global transform:
    P_glcs = POP * SOP * P_socs
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Sequence, Union

import numpy as np
from scipy.spatial.transform import Rotation


@dataclass
class RigidTransform:
    """
    Rigid transform (rotation and translation) between two frames.

    Attributes:
        R: Rotation matrix (3x3) - transforms vectors from source to target frame.
        t: Translation vector (3,) - position of source origin in target frame.

    Mathematical Details:
        For a point P in the source frame:
            P_target = R @ P_source + t

    Example:
        >>> sop = RigidTransform(R=np.eye(3), t=np.array([10.0, 20.0, 1.5]))
        >>> sop.transform_points(np.array([1.0, 0.0, 0.0]))
        array([11. , 20. ,  1.5])
    """

    R: np.ndarray = field(default_factory=lambda: np.eye(3))
    t: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        """Validate inputs after initialization."""
        self.R = np.asarray(self.R, dtype=np.float64)
        self.t = np.asarray(self.t, dtype=np.float64).flatten()

        if self.R.shape != (3, 3):
            raise ValueError(f"R must be 3x3, got {self.R.shape}")
        if self.t.shape != (3,):
            raise ValueError(f"t must be (3,), got {self.t.shape}")

    @property
    def translation(self) -> np.ndarray:
        """Translation component (3,), the target-frame position of the source origin."""
        return self.t

    def get_transform_matrix(self) -> np.ndarray:
        """
        Get the 4x4 homogeneous transformation matrix.

            T = | R  t |
                | 0  1 |

        Returns:
            np.ndarray: 4x4 transformation matrix.
        """
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.R
        T[:3, 3] = self.t
        return T

    def inverse(self) -> "RigidTransform":
        """
        Get the inverse transformation.

        For transformation T = [R, t], the inverse is:
            T^(-1) = [R^T, -R^T @ t]

        Returns:
            RigidTransform: New instance representing the inverse transform.

        Mathematical Derivation:
            Given: P_b = R @ P_a + t
            Solving for P_a:
                P_a = R^T @ (P_b - t)
                    = R^T @ P_b - R^T @ t
            So: R_inv = R^T, t_inv = -R^T @ t
        """
        R_inv = self.R.T
        t_inv = -R_inv @ self.t
        return RigidTransform(R=R_inv, t=t_inv)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """
        Transform 3D points using this rigid transformation.

        Args:
            points: 3D points (N, 3) or (3,) in source frame.

        Returns:
            np.ndarray: Transformed points in target frame, same shape as input.
        """
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            return self.R @ points + self.t
        return points @ self.R.T + self.t

    def compose(self, other: "RigidTransform") -> "RigidTransform":
        """
        Compose this transformation with another (chain transformations).

        If this is T1 and other is T2, result is T2 @ T1
        (applies T1 first, then T2).

        Args:
            other: The transformation to apply after this one.

        Returns:
            RigidTransform: Combined transformation.
        """
        R_combined = other.R @ self.R
        t_combined = other.R @ self.t + other.t
        return RigidTransform(R=R_combined, t=t_combined)

    def is_rigid(self, atol: float = 1e-6) -> bool:
        """Check that R is orthonormal with determinant +1."""
        return bool(
            np.allclose(self.R.T @ self.R, np.eye(3), atol=atol)
            and np.isclose(np.linalg.det(self.R), 1.0, atol=atol)
        )

    @classmethod
    def identity(cls) -> "RigidTransform":
        """Identity transform."""
        return cls()

    @classmethod
    def from_matrix(cls, T: Union[np.ndarray, Sequence[Sequence[float]]]) -> "RigidTransform":
        """
        Create from 4x4 or 3x4 transformation matrix.

        Args:
            T: 4x4 homogeneous or 3x4 transformation matrix. A flat list of
               16 or 12 values is reshaped row-major.

        Returns:
            RigidTransform: Instance with extracted R and t.
        """
        T = np.asarray(T, dtype=np.float64)
        if T.ndim == 1 and T.size in (12, 16):
            T = T.reshape(-1, 4)
        if T.shape == (4, 4):
            return cls(R=T[:3, :3], t=T[:3, 3])
        elif T.shape == (3, 4):
            return cls(R=T[:, :3], t=T[:, 3])
        else:
            raise ValueError(f"Expected 4x4 or 3x4 matrix, got {T.shape}")

    @classmethod
    def from_euler(
        cls,
        angles: Sequence[float],
        translation: Sequence[float] = (0.0, 0.0, 0.0),
        seq: str = "xyz",
        degrees: bool = True,
    ) -> "RigidTransform":
        """
        Create from Euler angles and a translation.

        Args:
            angles: Three rotation angles, applied in ``seq`` order.
            translation: Translation vector (3,).
            seq: Axis sequence understood by scipy's ``Rotation.from_euler``.
            degrees: Whether ``angles`` are in degrees.

        Returns:
            RigidTransform: Instance with the composed rotation.
        """
        R = Rotation.from_euler(seq, angles, degrees=degrees).as_matrix()
        return cls(R=R, t=np.asarray(translation, dtype=np.float64))

    @classmethod
    def from_config(cls, value: Any) -> "RigidTransform":
        """
        Create from a project file entry.

        Accepted forms:
            - 4x4 or 3x4 nested list (or flat list of 16/12 values)
            - ``{"matrix": [...]}``
            - ``{"rotation": [rx, ry, rz], "translation": [tx, ty, tz]}``
              with optional ``"seq"`` (default ``"xyz"``) and ``"degrees"``
              (default true)

        Raises:
            ValueError: If the entry has none of the accepted forms.
        """
        if value is None:
            return cls.identity()
        if isinstance(value, dict):
            if "matrix" in value:
                return cls.from_matrix(value["matrix"])
            if "rotation" in value or "translation" in value:
                return cls.from_euler(
                    value.get("rotation", (0.0, 0.0, 0.0)),
                    value.get("translation", (0.0, 0.0, 0.0)),
                    seq=value.get("seq", "xyz"),
                    degrees=value.get("degrees", True),
                )
            raise ValueError(f"Unrecognized transform entry: {sorted(value)}")
        return cls.from_matrix(value)

    def to_config(self) -> Dict[str, Any]:
        """Serialize as a ``{"matrix": ...}`` project file entry."""
        return {"matrix": self.get_transform_matrix().tolist()}


@dataclass
class MountCalibration:
    """
    Camera mount calibration.

    Rigid transform from the camera origin frame (the frame reached by
    applying the inverse COP to scanner coordinates) into the camera mount
    coordinate system in which the camera intrinsics are defined.

    Attributes:
        name: Mount calibration name as referenced by images.
        transform: Camera origin frame -> CMCS transform.
    """

    name: str
    transform: RigidTransform = field(default_factory=RigidTransform)

    @classmethod
    def from_config(cls, name: str, entry: Dict[str, Any]) -> "MountCalibration":
        """Create from a project file ``mounts`` entry."""
        return cls(name=name, transform=RigidTransform.from_config(entry.get("transform")))
