"""
Scanning Project Model.

A project ties together everything needed to place scanner points in the
global frame and to project them into thermal images.

Project File Format (YAML):
===========================

    project:
      name: bridge_survey
      pop: {matrix: [[1, 0, 0, 512000.0], [0, 1, 0, 5400000.0],
                     [0, 0, 1, 120.0], [0, 0, 0, 1]]}
      cameras:
        infratec:
          width: 640
          height: 480
          intrinsics: {fx: 950.0, fy: 950.0, cx: 320.0, cy: 240.0}
          distortion: {k1: -0.1, k2: 0.02}
          angle_extents: {tan_min_horz: -0.4, tan_max_horz: 0.4,
                          tan_min_vert: -0.3, tan_max_vert: 0.3}
      mounts:
        top_mount:
          transform: {rotation: [0, 0, 90], translation: [0, 0, 0.2]}
      scan_positions:
        ScanPos001:
          sop: {matrix: [...]}
          point_files: [scans/ScanPos001.las]
          images:
            ScanPos001_IR01:
              cop: {rotation: [90, 0, 0], translation: [0, 0, 0]}
              camera: infratec
              mount: top_mount

Transforms accept any form understood by ``RigidTransform.from_config``.
Relative point file paths are resolved against the project file directory.

Coordinate Systems:
===================
- SOP: scan position pose, SOCS -> PRCS
- POP: project pose, PRCS -> GLCS
- COP: camera pose of an image in SOCS
- Mount: camera origin frame -> CMCS
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..calibration.extrinsics import MountCalibration, RigidTransform
from ..calibration.intrinsics import CameraCalibration
from ..errors import CalibrationLookupError, ConfigurationError
from ..utils.config_loader import ConfigLoader


@dataclass
class ImageRecord:
    """A thermal image as registered in the project."""

    name: str
    cop: RigidTransform
    camera: str
    mount: str


@dataclass
class ScanPosition:
    """
    One physical scanner setup.

    Attributes:
        name: Scan position name.
        sop: Scanner's own pose (SOCS -> PRCS).
        point_files: Source point cloud files captured at this position.
        images: Thermal images registered at this position, by name.
    """

    name: str
    sop: RigidTransform = field(default_factory=RigidTransform)
    point_files: List[Path] = field(default_factory=list)
    images: Dict[str, ImageRecord] = field(default_factory=dict)

    def image_from_path(
        self,
        path: Union[str, Path],
        name_map: Optional[Mapping[str, str]] = None,
    ) -> ImageRecord:
        """
        Resolve an image file to its project record.

        The file stem is the image name unless ``name_map`` translates the
        file name or stem to a different project image name.

        Args:
            path: Image file path.
            name_map: Optional file name/stem -> project image name mapping.

        Returns:
            ImageRecord registered under the resolved name.

        Raises:
            CalibrationLookupError: If no image with that name exists here.
        """
        path = Path(path)
        name = path.stem
        if name_map:
            name = name_map.get(path.name, name_map.get(path.stem, path.stem))

        if name not in self.images:
            raise CalibrationLookupError(
                f"Image '{name}' (from {path}) is not registered at scan position "
                f"'{self.name}'; known images: {sorted(self.images)}"
            )
        return self.images[name]


class Project:
    """Scanning project with its scan positions and calibrations."""

    def __init__(
        self,
        name: str = "project",
        pop: Optional[RigidTransform] = None,
        scan_positions: Optional[Dict[str, ScanPosition]] = None,
        cameras: Optional[Dict[str, CameraCalibration]] = None,
        mounts: Optional[Dict[str, MountCalibration]] = None,
        path: Optional[Path] = None,
    ):
        """
        Initialize a project.

        Args:
            name: Project name.
            pop: Project pose (PRCS -> GLCS).
            scan_positions: Scan positions by name.
            cameras: Camera calibrations by name.
            mounts: Mount calibrations by name.
            path: Project file the project was loaded from.
        """
        self.name = name
        self.pop = pop if pop is not None else RigidTransform.identity()
        self.scan_positions = scan_positions or {}
        self.cameras = cameras or {}
        self.mounts = mounts or {}
        self.path = path

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Project":
        """
        Load a project from a YAML file.

        Raises:
            FileNotFoundError: If the project file does not exist.
            ConfigurationError: If the file is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Project file not found: {path}")

        data = ConfigLoader(config_dir=str(path.parent)).load(path, use_cache=False)
        return cls.from_dict(data, base_dir=path.parent, path=path)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        base_dir: Union[str, Path, None] = None,
        path: Optional[Path] = None,
    ) -> "Project":
        """
        Build a project from its parsed YAML structure.

        Raises:
            ConfigurationError: If a section is missing or malformed.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Project file {path} does not contain a mapping")
        data = data.get("project", data)
        base_dir = Path(base_dir) if base_dir is not None else Path(".")

        try:
            cameras = {
                name: CameraCalibration.from_config(name, entry)
                for name, entry in (data.get("cameras") or {}).items()
            }
            mounts = {
                name: MountCalibration.from_config(name, entry or {})
                for name, entry in (data.get("mounts") or {}).items()
            }
            scan_positions = {
                name: _scan_position_from_config(name, entry or {}, base_dir)
                for name, entry in (data.get("scan_positions") or {}).items()
            }
            pop = RigidTransform.from_config(data.get("pop"))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed project {path or ''}: {exc}") from exc

        return cls(
            name=str(data.get("name", path.stem if path else "project")),
            pop=pop,
            scan_positions=scan_positions,
            cameras=cameras,
            mounts=mounts,
            path=path,
        )

    def scan_position_names(self) -> List[str]:
        """All scan position names in lexicographic order."""
        return sorted(self.scan_positions)

    def get_scan_position(self, name: str) -> ScanPosition:
        """
        Look up a scan position by name.

        Raises:
            CalibrationLookupError: If the scan position does not exist.
        """
        if name not in self.scan_positions:
            raise CalibrationLookupError(
                f"Scan position '{name}' not found in project '{self.name}'"
            )
        return self.scan_positions[name]

    def camera_calibration(self, name: str) -> CameraCalibration:
        """
        Look up a camera calibration by name.

        Raises:
            CalibrationLookupError: If the camera calibration does not exist.
        """
        if name not in self.cameras:
            raise CalibrationLookupError(
                f"Camera calibration '{name}' not found in project '{self.name}'"
            )
        return self.cameras[name]

    def mount_calibration(self, name: str) -> MountCalibration:
        """
        Look up a mount calibration by name.

        Raises:
            CalibrationLookupError: If the mount calibration does not exist.
        """
        if name not in self.mounts:
            raise CalibrationLookupError(
                f"Mount calibration '{name}' not found in project '{self.name}'"
            )
        return self.mounts[name]

    def image_from_path(
        self,
        scan_position: ScanPosition,
        path: Union[str, Path],
        name_map: Optional[Mapping[str, str]] = None,
    ) -> ImageRecord:
        """Resolve an image file at a scan position, see ScanPosition.image_from_path()."""
        return scan_position.image_from_path(path, name_map)

    def __repr__(self) -> str:
        return (
            f"Project(name={self.name!r}, scan_positions={len(self.scan_positions)}, "
            f"cameras={len(self.cameras)}, mounts={len(self.mounts)})"
        )


def _scan_position_from_config(name: str, entry: Dict[str, Any], base_dir: Path) -> ScanPosition:
    point_files = []
    for point_file in entry.get("point_files") or []:
        point_file = Path(point_file)
        point_files.append(point_file if point_file.is_absolute() else base_dir / point_file)

    images = {}
    for image_name, image in (entry.get("images") or {}).items():
        images[image_name] = ImageRecord(
            name=image_name,
            cop=RigidTransform.from_config(image.get("cop")),
            camera=str(image["camera"]),
            mount=str(image["mount"]),
        )

    return ScanPosition(
        name=name,
        sop=RigidTransform.from_config(entry.get("sop")),
        point_files=point_files,
        images=images,
    )


def load_name_map(path: Union[str, Path]) -> Dict[str, str]:
    """
    Load a file name -> project image name map.

    The file is a flat YAML mapping, e.g. ``IR_0001: ScanPos001_IR01``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not a flat mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Name map not found: {path}")

    data = ConfigLoader(config_dir=str(path.parent)).load(path, use_cache=False)
    if not isinstance(data, dict) or any(isinstance(v, (dict, list)) for v in data.values()):
        raise ConfigurationError(f"Name map {path} must be a flat mapping of names")
    return {str(key): str(value) for key, value in data.items()}
