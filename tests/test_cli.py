"""End-to-end tests through the command line entry point, with real files."""

import textwrap

import numpy as np
import pytest

PROJECT_YAML = textwrap.dedent("""
    project:
      name: cli
      pop: {translation: [1000.0, 2000.0, 100.0]}
      cameras:
        thermal:
          width: 100
          height: 100
          intrinsics: {fx: 100.0, fy: 100.0, cx: 50.0, cy: 50.0}
      mounts:
        top: {}
      scan_positions:
        ScanPos001:
          point_files: [scans/scan1.bin]
          images:
            IR01: {camera: thermal, mount: top}
""")


@pytest.fixture
def workspace(tmp_path):
    """Project file, one .bin scan and one 10 °C raster."""
    (tmp_path / "project.yaml").write_text(PROJECT_YAML)

    (tmp_path / "scans").mkdir()
    np.array([
        [0.0, 0.0, 10.0, 0.5],
        [0.0, 0.0, -10.0, 0.5],   # behind the camera
        [1.0, 1.0, 10.0, 0.25],
    ], dtype=np.float32).tofile(str(tmp_path / "scans" / "scan1.bin"))

    (tmp_path / "thermal" / "ScanPos001").mkdir(parents=True)
    np.save(str(tmp_path / "thermal" / "ScanPos001" / "IR01.npy"), np.full((100, 100), 283.15))
    return tmp_path


def _args(workspace, *extra):
    return [
        str(workspace / "project.yaml"),
        str(workspace / "thermal"),
        str(workspace / "las"),
        "--min-reflectance", "0",
        "--max-reflectance", "1",
        "--min-temperature", "0",
        "--max-temperature", "20",
        "--no-progress",
        *extra,
    ]


class TestMain:
    """Tests for thermocolor.cli.main."""

    def test_colorize(self, workspace):
        """A full run writes the covered points to LAS."""
        import laspy
        from thermocolor.cli import EXIT_OK, main

        assert main(_args(workspace)) == EXIT_OK

        las = laspy.read(str(workspace / "las" / "scan1.las"))
        assert len(las.points) == 2
        np.testing.assert_allclose(np.asarray(las.x), [1000.0, 1001.0])
        np.testing.assert_allclose(np.asarray(las.y), [2000.0, 2001.0])
        np.testing.assert_allclose(np.asarray(las.z), [110.0, 110.0])
        assert list(las.intensity) == [32768, 16384]
        np.testing.assert_allclose(np.asarray(las.gps_time), [10.0, 10.0], atol=1e-9)
        assert list(las.green) == [0, 0]
        assert all(red in (32767, 32768) for red in las.red)
        np.testing.assert_allclose(las.header.offsets, [1000.0, 2000.0, 100.0])

    def test_dry_run_writes_nothing(self, workspace):
        from thermocolor.cli import EXIT_OK, main

        assert main(_args(workspace, "--dry-run")) == EXIT_OK
        assert not (workspace / "las" / "scan1.las").exists()

    def test_existing_output(self, workspace):
        """Existing outputs need --overwrite."""
        from thermocolor.cli import EXIT_INVALID, EXIT_OK, main

        assert main(_args(workspace)) == EXIT_OK
        assert main(_args(workspace)) == EXIT_INVALID
        assert main(_args(workspace, "--overwrite")) == EXIT_OK

    def test_unknown_scan_position(self, workspace):
        from thermocolor.cli import EXIT_INVALID, main

        assert main(_args(workspace, "--scan-position", "ScanPos999")) == EXIT_INVALID

    def test_sync_on_bin_input_fails(self, workspace):
        """.bin input cannot be synced; the run aborts on the file."""
        from thermocolor.cli import EXIT_FAILED, main

        assert main(_args(workspace, "--sync-to-pps")) == EXIT_FAILED
        assert not (workspace / "las" / "scan1.las").exists()

    def test_continue_on_file_error(self, workspace):
        """With --on-file-error continue the run finishes but reports failure."""
        from thermocolor.cli import EXIT_FAILED, main

        assert main(_args(workspace, "--sync-to-pps", "--on-file-error", "continue")) == EXIT_FAILED

    def test_unreadable_raster(self, workspace):
        """A raster OpenCV cannot decode makes the run invalid."""
        from thermocolor.cli import EXIT_INVALID, main

        image_dir = workspace / "thermal" / "ScanPos001"
        (image_dir / "IR01.npy").unlink()
        (image_dir / "IR01.tif").write_bytes(b"not a tiff")

        assert main(_args(workspace)) == EXIT_INVALID

    def test_repeated_scan_position(self, workspace):
        from thermocolor.cli import EXIT_OK, main

        args = _args(workspace, "--scan-position", "ScanPos001", "--scan-position", "ScanPos001")

        assert main(args) == EXIT_OK

    def test_coordinates_out_of_las_range(self, workspace):
        """A visible point too far for the LAS scale fails the file, not the process."""
        from thermocolor.cli import EXIT_FAILED, main

        np.array([[3.0e6, 0.0, 3.0e7, 0.5]], dtype=np.float32).tofile(
            str(workspace / "scans" / "scan1.bin"),
        )

        assert main(_args(workspace)) == EXIT_FAILED
        assert not (workspace / "las" / "scan1.las").exists()

    def test_config_file(self, workspace):
        """Config file values apply unless overridden on the command line."""
        import laspy
        from thermocolor.cli import EXIT_OK, main

        config = workspace / "config.yaml"
        config.write_text("colorize:\n  keep_without_thermal: true\n  max_reflectance: 5.0\n")

        assert main(_args(workspace, "--config", str(config))) == EXIT_OK

        las = laspy.read(str(workspace / "las" / "scan1.las"))
        assert len(las.points) == 3
        # --max-reflectance 1 wins over the file
        assert las.intensity[0] == 32768

    def test_log_file(self, workspace):
        from thermocolor.cli import main

        log_file = workspace / "run.log"
        main(_args(workspace, "--log-file", str(log_file), "--log-level", "DEBUG"))

        assert "Wrote 2 of 3 points" in log_file.read_text()
