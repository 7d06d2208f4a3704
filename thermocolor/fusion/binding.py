"""
Image Binding.

Binds one thermal image to the calibration needed to sample it: the shared
camera and mount calibrations of the project, the image's own camera pose
(COP) and the raster holding the temperatures.

Sampling Chain:
---------------
    P_socs --COP^-1, MOUNT--> P_cmcs --camera model--> (u, v) --raster--> T

    1. Transform the point into the camera mount frame.
    2. Project it; points behind the camera, outside the angular extents or
       off the sensor are not seen by this image.
    3. Optionally remap for a raster stored rotated by 90 degrees:
           u' = height - v
           v' = u
       where height is the calibrated image height.
    4. Truncate (u, v) to integer pixel indices and read the raster.
    5. Convert Kelvin to Celsius.

A raster lookup that fails after a successful projection is not a miss: the
calibration and raster disagree, and RasterLookupError is raised.
"""

from typing import Optional

import numpy as np

from ..calibration.extrinsics import MountCalibration, RigidTransform
from ..calibration.frames import CalibratedPoint, scanner_to_camera_mount
from ..calibration.intrinsics import CameraCalibration
from ..calibration.projection import camera_to_image_batch
from ..errors import CalibrationLookupError
from ..sensors.thermal import ThermalImage

KELVIN_OFFSET = 273.15


class ImageBinding:
    """
    A thermal image bound to its calibration.

    Camera and mount calibrations are shared, read-only references into the
    project; the raster is owned by the binding.
    """

    def __init__(
        self,
        name: str,
        camera: CameraCalibration,
        mount: MountCalibration,
        cop: RigidTransform,
        raster: ThermalImage,
        rotate: bool = False,
    ):
        """
        Initialize the binding.

        Args:
            name: Project image name.
            camera: Camera calibration of the image.
            mount: Mount calibration of the image.
            cop: Camera pose in SOCS.
            raster: Thermal raster in Kelvin.
            rotate: Raster is stored rotated by 90 degrees.

        Raises:
            CalibrationLookupError: If the raster size does not match the
                calibrated image size (swapped when rotated).
        """
        expected = (camera.height, camera.width) if rotate else (camera.width, camera.height)
        if (raster.width, raster.height) != expected:
            raise CalibrationLookupError(
                f"Raster {raster.path or name} is {raster.width}x{raster.height}, but camera "
                f"'{camera.name}' expects {expected[0]}x{expected[1]}"
                f"{' (rotated)' if rotate else ''}"
            )

        self.name = name
        self.camera = camera
        self.mount = mount
        self.cop = cop
        self.raster = raster
        self.rotate = rotate

    def sample_temperatures(self, points: CalibratedPoint) -> np.ndarray:
        """
        Sample temperatures for a chunk of points.

        Args:
            points: Points (N, 3) in SOCS.

        Returns:
            np.ndarray: Temperatures in °C (N,), NaN where the image does not
                see the point.

        Raises:
            RasterLookupError: If a projected pixel lies outside the raster.
        """
        cmcs = scanner_to_camera_mount(points, self.cop, self.mount)
        if cmcs.xyz.ndim == 1:
            cmcs = CalibratedPoint(xyz=cmcs.xyz[np.newaxis, :], frame=cmcs.frame)

        pixels, visible = camera_to_image_batch(cmcs, self.camera)
        temperatures = np.full(len(visible), np.nan)
        if not visible.any():
            return temperatures

        u = pixels[visible, 0]
        v = pixels[visible, 1]
        if self.rotate:
            u, v = self.camera.height - v, u

        kelvin = self.raster.temperatures(
            np.trunc(u).astype(np.int64),
            np.trunc(v).astype(np.int64),
        )
        temperatures[visible] = kelvin - KELVIN_OFFSET
        return temperatures

    def sample_temperature(self, point: CalibratedPoint) -> Optional[float]:
        """
        Sample the temperature of a single point.

        Args:
            point: One point (3,) in SOCS.

        Returns:
            Temperature in °C, or None if the image does not see the point.
        """
        value = float(self.sample_temperatures(point)[0])
        return None if np.isnan(value) else value

    def __repr__(self) -> str:
        return (
            f"ImageBinding(name={self.name!r}, camera={self.camera.name!r}, "
            f"mount={self.mount.name!r}, rotate={self.rotate})"
        )
