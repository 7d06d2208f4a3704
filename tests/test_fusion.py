import itertools

import numpy as np
import pytest

KELVIN = 273.15


class TestTemperatureAggregator:
    """Tests for TemperatureAggregator."""

    def test_empty_is_no_data(self):
        """No samples gives NO_DATA."""
        from thermocolor.fusion.aggregator import NO_DATA, TemperatureAggregator

        result = TemperatureAggregator().aggregate([])

        assert result is NO_DATA
        assert not result

    def test_mean_is_exact(self):
        """10.0 and 20.0 average to exactly 15.0."""
        from thermocolor.fusion.aggregator import Measured, TemperatureAggregator

        result = TemperatureAggregator().aggregate([10.0, 20.0])

        assert isinstance(result, Measured)
        assert result.value == 15.0

    def test_permutation_invariant(self):
        """Sample order never changes the mean."""
        from thermocolor.fusion.aggregator import TemperatureAggregator

        aggregator = TemperatureAggregator()
        samples = [0.1, -7.3, 1e-9, 22.7, 3.3333]
        results = {aggregator.aggregate(p).value for p in itertools.permutations(samples)}

        assert len(results) == 1

    def test_stack_mean_and_no_data(self):
        """NaN marks an image that did not see the point."""
        from thermocolor.fusion.aggregator import TemperatureAggregator

        stack = np.array([
            [10.0, np.nan, np.nan, 4.0],
            [20.0, 7.0, np.nan, np.nan],
        ])
        means = TemperatureAggregator().aggregate_stack(stack)

        assert means[0] == 15.0
        assert means[1] == 7.0
        assert np.isnan(means[2])
        assert means[3] == 4.0

    def test_stack_permutation_invariant(self):
        """Reordering images gives bit-identical chunk results."""
        from thermocolor.fusion.aggregator import TemperatureAggregator

        rng = np.random.RandomState(3)
        stack = rng.uniform(-40, 40, (4, 200))
        stack[rng.uniform(size=stack.shape) < 0.3] = np.nan

        aggregator = TemperatureAggregator()
        reference = aggregator.aggregate_stack(stack)
        for order in itertools.permutations(range(4)):
            np.testing.assert_array_equal(aggregator.aggregate_stack(stack[list(order)]), reference)

    def test_stack_without_images(self):
        """Zero images yield NaN for every point."""
        from thermocolor.fusion.aggregator import TemperatureAggregator

        means = TemperatureAggregator().aggregate_stack(np.empty((0, 3)))

        assert means.shape == (3,)
        assert np.all(np.isnan(means))


class TestAttributeMapper:
    """Tests for intensity and color mapping."""

    @pytest.fixture
    def mapper(self):
        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        return AttributeMapper(-5.0, 20.0, ColorGradient.two_stop(-40.0, -20.0))

    def test_intensity_endpoints(self, mapper):
        """min -> 0, max -> 65535."""
        assert mapper.reflectance_to_intensity(-5.0) == 0
        assert mapper.reflectance_to_intensity(20.0) == 65535

    def test_intensity_midpoint(self):
        """Reflectance 0.5 in [0, 1] rounds to 32768."""
        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        mapper = AttributeMapper(0.0, 1.0, ColorGradient.two_stop(0.0, 1.0))

        assert mapper.reflectance_to_intensity(0.5) == 32768

    def test_intensity_wraps_out_of_range(self):
        """Out-of-range reflectance wraps like an unsigned 16-bit cast."""
        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        mapper = AttributeMapper(0.0, 1.0, ColorGradient.two_stop(0.0, 1.0))
        values = mapper.reflectance_to_intensity(np.array([2.0, -1.0]))

        assert values.dtype == np.uint16
        assert values.tolist() == [131070 % 65536, 1]

    def test_intensity_clamps_when_configured(self):
        """clamp_intensity saturates instead of wrapping."""
        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        mapper = AttributeMapper(
            0.0, 1.0, ColorGradient.two_stop(0.0, 1.0), clamp_intensity=True,
        )

        assert mapper.reflectance_to_intensity(np.array([2.0, -1.0, 0.5])).tolist() == [
            65535, 0, 32768,
        ]

    @pytest.mark.parametrize("clamp", [False, True])
    def test_intensity_non_finite_is_zero(self, clamp):
        """NaN and infinite reflectance map to 0 without a cast warning."""
        import warnings

        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        mapper = AttributeMapper(0.0, 1.0, ColorGradient.two_stop(0.0, 1.0), clamp_intensity=clamp)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            values = mapper.reflectance_to_intensity(np.array([np.nan, np.inf, -np.inf, 0.5]))
            scalar = mapper.reflectance_to_intensity(float("nan"))

        assert values.tolist() == [0, 0, 0, 32768]
        assert scalar == 0

    def test_zero_reflectance_range(self):
        """An empty reflectance range is a configuration error."""
        from thermocolor.errors import ConfigurationError
        from thermocolor.fusion.attributes import AttributeMapper, ColorGradient

        with pytest.raises(ConfigurationError):
            AttributeMapper(3.0, 3.0, ColorGradient.two_stop(0.0, 1.0))

    def test_color_endpoints(self, mapper):
        """Blue at the minimum temperature, red at the maximum."""
        assert mapper.temperature_to_color(-40.0) == (0, 0, 255)
        assert mapper.temperature_to_color(-20.0) == (255, 0, 0)

    def test_color_midpoint(self, mapper):
        """The midpoint mixes red and blue equally."""
        red, green, blue = mapper.temperature_to_color(-30.0)

        assert red in (127, 128)
        assert green == 0
        assert blue in (127, 128)

    def test_color_clamps_outside_domain(self, mapper):
        """Temperatures beyond the domain take the endpoint colors."""
        assert mapper.temperature_to_color(-100.0) == (0, 0, 255)
        assert mapper.temperature_to_color(35.0) == (255, 0, 0)

    def test_color_no_data_is_black(self, mapper):
        """NaN temperature maps to black."""
        assert mapper.temperature_to_color(float("nan")) == (0, 0, 0)

    def test_color_array(self, mapper):
        """Arrays give uint8 (N, 3) colors."""
        colors = mapper.temperature_to_color(np.array([-40.0, np.nan, -20.0]))

        assert colors.shape == (3, 3)
        assert colors.dtype == np.uint8
        assert colors.tolist() == [[0, 0, 255], [0, 0, 0], [255, 0, 0]]

    def test_las_color_endpoints(self, mapper):
        """LAS colors span the full 16-bit range, black for no data."""
        colors = mapper.temperature_to_las_color(np.array([-40.0, np.nan, -20.0]))

        assert colors.dtype == np.uint16
        assert colors.tolist() == [[0, 0, 65535], [0, 0, 0], [65535, 0, 0]]

    def test_las_color_keeps_gradient_resolution(self, mapper):
        """Steps too small for 8 bits still change the 16-bit color."""
        low = mapper.temperature_to_las_color(-30.0)
        high = mapper.temperature_to_las_color(-29.99)

        assert mapper.temperature_to_color(-30.0) == mapper.temperature_to_color(-29.99)
        assert high[0] > low[0]
        assert high[2] < low[2]
        assert low[0] in (32767, 32768)

    def test_multi_stop_gradient(self):
        """Gradients may carry more than two stops."""
        from thermocolor.fusion.attributes import ColorGradient

        gradient = ColorGradient([
            (0.0, (0, 0, 255)),
            (10.0, (0, 255, 0)),
            (20.0, (255, 0, 0)),
        ])

        assert gradient.get(10.0).tolist() == [0, 255, 0]
        assert gradient.get(15.0).tolist() == [127, 127, 0]

    def test_gradient_validation(self):
        """Stops must be increasing and 8-bit."""
        from thermocolor.errors import ConfigurationError
        from thermocolor.fusion.attributes import ColorGradient

        with pytest.raises(ConfigurationError):
            ColorGradient([(0.0, (0, 0, 0))])
        with pytest.raises(ConfigurationError):
            ColorGradient.two_stop(5.0, 5.0)
        with pytest.raises(ConfigurationError):
            ColorGradient([(0.0, (0, 0, 0)), (1.0, (0, 0, 300))])


class TestImageBinding:
    """Tests for ImageBinding sampling."""

    def _binding(self, camera, mount, grid, rotate=False, cop=None):
        from thermocolor.calibration.extrinsics import RigidTransform
        from thermocolor.fusion.binding import ImageBinding
        from thermocolor.sensors.thermal import ThermalImage

        return ImageBinding(
            name="IR01",
            camera=camera,
            mount=mount,
            cop=cop or RigidTransform.identity(),
            raster=ThermalImage(grid),
            rotate=rotate,
        )

    def test_sample_center(self, camera, mount):
        """A point on the optical axis samples the center pixel, in °C."""
        from thermocolor.calibration.frames import CalibratedPoint

        grid = np.full((100, 100), 280.0)
        grid[50, 50] = KELVIN + 12.5
        binding = self._binding(camera, mount, grid)

        assert binding.sample_temperature(CalibratedPoint.socs(0.0, 0.0, 10.0)) == pytest.approx(12.5)

    def test_sample_not_seen(self, camera, mount):
        """Points behind the camera are not seen."""
        from thermocolor.calibration.frames import CalibratedPoint

        binding = self._binding(camera, mount, np.full((100, 100), 300.0))

        assert binding.sample_temperature(CalibratedPoint.socs(0.0, 0.0, -10.0)) is None

    def test_truncates_pixel_coordinates(self, camera, mount):
        """Fractional pixels truncate toward zero."""
        from thermocolor.calibration.frames import CalibratedPoint

        grid = np.zeros((100, 100))
        grid[30, 60] = KELVIN + 1.0
        binding = self._binding(camera, mount, grid)

        # u = 60.9, v = 30.9
        value = binding.sample_temperature(CalibratedPoint.socs(1.09, -1.91, 10.0))
        assert value == pytest.approx(1.0)

    def test_chunk_sampling(self, camera, mount):
        """Chunks return one value per point, NaN where not seen."""
        from thermocolor.calibration.frames import CalibratedPoint

        binding = self._binding(camera, mount, np.full((100, 100), KELVIN + 5.0))
        points = CalibratedPoint.socs(np.array([
            [0.0, 0.0, 10.0],
            [0.0, 0.0, -10.0],
            [100.0, 0.0, 10.0],
        ]))
        values = binding.sample_temperatures(points)

        assert values.shape == (3,)
        assert values[0] == pytest.approx(5.0)
        assert np.isnan(values[1])
        assert np.isnan(values[2])

    def test_nan_pixel_is_not_seen(self, camera, mount):
        """A NaN raster value counts as no data."""
        from thermocolor.calibration.frames import CalibratedPoint

        grid = np.full((100, 100), 300.0)
        grid[50, 50] = np.nan
        binding = self._binding(camera, mount, grid)

        assert binding.sample_temperature(CalibratedPoint.socs(0.0, 0.0, 10.0)) is None

    def test_camera_pose_applied(self, camera, mount):
        """The COP moves the camera in SOCS."""
        from thermocolor.calibration.extrinsics import RigidTransform
        from thermocolor.calibration.frames import CalibratedPoint

        binding = self._binding(
            camera, mount, np.full((100, 100), 300.0),
            cop=RigidTransform(t=np.array([0.0, 0.0, 20.0])),
        )

        # 10 m in front of the scanner is 10 m behind the camera
        assert binding.sample_temperature(CalibratedPoint.socs(0.0, 0.0, 10.0)) is None
        assert binding.sample_temperature(CalibratedPoint.socs(0.0, 0.0, 30.0)) is not None

    def test_rotated_remap(self, mount):
        """Rotated rasters are read at u' = height - v, v' = u."""
        from thermocolor.calibration.frames import CalibratedPoint
        from thermocolor.calibration.intrinsics import CameraCalibration

        camera = CameraCalibration(
            name="wide", fx=100.0, fy=100.0, cx=50.0, cy=25.0, width=100, height=50,
        )
        # Rotated raster: camera.height columns, camera.width rows
        grid = np.zeros((100, 50))
        grid[30, 29] = KELVIN + 7.0
        binding = self._binding(camera, mount, grid, rotate=True)

        # u = 30.5, v = 20.5 -> u' = 29.5, v' = 30.5
        value = binding.sample_temperature(CalibratedPoint.socs(-1.95, -0.45, 10.0))
        assert value == pytest.approx(7.0)

    def test_rotated_lookup_failure_is_fatal(self, mount):
        """A pixel outside the raster after projection raises."""
        from thermocolor.calibration.frames import CalibratedPoint
        from thermocolor.calibration.intrinsics import CameraCalibration
        from thermocolor.errors import RasterLookupError

        camera = CameraCalibration(
            name="wide", fx=100.0, fy=100.0, cx=50.0, cy=25.0, width=100, height=50,
        )
        binding = self._binding(camera, mount, np.zeros((100, 50)), rotate=True)

        # v = 0 -> u' = 50, one past the last column
        with pytest.raises(RasterLookupError):
            binding.sample_temperature(CalibratedPoint.socs(0.0, -2.5, 10.0))

    def test_dimension_mismatch(self, camera, mount):
        """Raster size must match the calibration."""
        from thermocolor.errors import CalibrationLookupError

        with pytest.raises(CalibrationLookupError):
            self._binding(camera, mount, np.zeros((80, 100)))

    def test_dimension_mismatch_rotated(self, mount):
        """Rotated rasters must have swapped dimensions."""
        from thermocolor.calibration.intrinsics import CameraCalibration
        from thermocolor.errors import CalibrationLookupError

        camera = CameraCalibration(
            name="wide", fx=100.0, fy=100.0, cx=50.0, cy=25.0, width=100, height=50,
        )
        with pytest.raises(CalibrationLookupError):
            self._binding(camera, mount, np.zeros((50, 100)), rotate=True)
