"""Shared fixtures: a small project, thermal rasters on disk and in-memory point I/O."""

from pathlib import Path

import numpy as np
import pytest

KELVIN = 273.15


def make_chunk(points):
    """Build a raw point chunk from (x, y, z, reflectance) tuples."""
    from thermocolor.sensors.lidar import RAW_POINT_DTYPE

    chunk = np.zeros(len(points), dtype=RAW_POINT_DTYPE)
    for i, (x, y, z, reflectance) in enumerate(points):
        chunk[i] = (x, y, z, reflectance)
    return chunk


class FakeStream:
    """In-memory point stream yielding fixed chunks."""

    def __init__(self, path, chunks, sync_to_pps=False, chunk_size=100_000):
        self.path = Path(path)
        self.chunks = chunks
        self.sync_to_pps = sync_to_pps
        self.chunk_size = chunk_size
        self.closed = False

    def iter_chunks(self):
        for chunk in self.chunks:
            yield chunk

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FakeSink:
    """In-memory point sink recording every chunk."""

    def __init__(self, path, header, fail_on_write=False):
        self.path = Path(path)
        self.header = header
        self.fail_on_write = fail_on_write
        self.chunks = []
        self.closed = False
        self.aborted = False

    def write_chunk(self, points):
        from thermocolor.errors import PointSinkError

        if self.fail_on_write:
            raise PointSinkError(f"disk full: {self.path}")
        self.chunks.append(points.copy())

    @property
    def points(self):
        from thermocolor.data.las_writer import OUTPUT_POINT_DTYPE

        if not self.chunks:
            return np.empty(0, dtype=OUTPUT_POINT_DTYPE)
        return np.concatenate(self.chunks)

    def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()


class FakeIO:
    """
    Point stream and sink factories for the colorizer.

    Streams are registered per source path; sinks are recorded per
    destination path as they are opened.
    """

    def __init__(self):
        self.sources = {}
        self.sinks = {}
        self.opened_streams = []
        self.failing_streams = set()
        self.failing_sinks = set()

    def add_source(self, path, points, chunk_size=None):
        chunk = make_chunk(points)
        if chunk_size is None:
            self.sources[Path(path)] = [chunk]
        else:
            self.sources[Path(path)] = [
                chunk[i:i + chunk_size] for i in range(0, len(chunk), chunk_size)
            ]

    def open_stream(self, path, sync_to_pps=False, chunk_size=100_000):
        from thermocolor.errors import PointStreamError

        path = Path(path)
        self.opened_streams.append(path)
        if path in self.failing_streams:
            raise PointStreamError(f"cannot open {path}")
        return FakeStream(path, self.sources.get(path, []), sync_to_pps, chunk_size)

    def open_sink(self, path, header):
        sink = FakeSink(path, header, fail_on_write=Path(path) in self.failing_sinks)
        self.sinks[Path(path)] = sink
        return sink


@pytest.fixture
def fake_io():
    """Fresh in-memory point I/O."""
    return FakeIO()


@pytest.fixture
def camera():
    """100x100 thermal camera with the principal point at the center."""
    from thermocolor.calibration.intrinsics import CameraCalibration

    return CameraCalibration(
        name="thermal",
        fx=100.0, fy=100.0,
        cx=50.0, cy=50.0,
        width=100, height=100,
    )


@pytest.fixture
def mount():
    """Identity camera mount."""
    from thermocolor.calibration.extrinsics import MountCalibration

    return MountCalibration(name="top")


@pytest.fixture
def project_factory(tmp_path, camera, mount):
    """
    Build a one-scan-position project.

    The scanner looks along +z; every image has an identity camera pose, so a
    point at (0, 0, 10) lands on the center pixel of every raster.
    """
    from thermocolor.calibration.extrinsics import RigidTransform
    from thermocolor.data.project import ImageRecord, Project, ScanPosition

    def build(image_names=("IR01",), point_files=("scan1.rxp",), name="ScanPos001"):
        images = {
            image_name: ImageRecord(
                name=image_name,
                cop=RigidTransform.identity(),
                camera="thermal",
                mount="top",
            )
            for image_name in image_names
        }
        scan_position = ScanPosition(
            name=name,
            sop=RigidTransform(t=np.array([1.0, 2.0, 3.0])),
            point_files=[tmp_path / "scans" / point_file for point_file in point_files],
            images=images,
        )
        return Project(
            name="test",
            pop=RigidTransform(t=np.array([1000.0, 2000.0, 100.0])),
            scan_positions={name: scan_position},
            cameras={"thermal": camera},
            mounts={"top": mount},
        )

    return build


@pytest.fixture
def write_raster(tmp_path):
    """Write a constant 100x100 raster (°C, stored in Kelvin) as .npy."""

    def write(scan_position, image_name, celsius, shape=(100, 100)):
        directory = tmp_path / "thermal" / scan_position
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{image_name}.npy"
        np.save(str(path), np.full(shape, celsius + KELVIN))
        return path

    return write


@pytest.fixture
def colorize_config(tmp_path):
    """Config factory pointing at the tmp_path image and output directories."""
    from thermocolor.fusion.colorizer import ColorizeConfig

    def build(**overrides):
        values = {
            "image_dir": tmp_path / "thermal",
            "output_dir": tmp_path / "las",
        }
        values.update(overrides)
        return ColorizeConfig(**values)

    return build
