"""
Output Attribute Mapping.

Converts raw scanner reflectance to the LAS intensity channel and
temperatures to display colors.

Intensity:
----------
    intensity = round(65535 * (r - r_min) / (r_max - r_min))

The reflectance range is a contract supplied by the operator. Values outside
it are not clamped by default; they wrap like an unsigned 16-bit cast. Set
``clamp_intensity`` to saturate at 0 and 65535 instead. Non-finite
reflectance (NaN, +-inf) carries no return strength and maps to 0 in both
modes.

Color:
------
A piecewise linear gradient over the temperature domain, by default blue
(0, 0, 255) at the minimum temperature and red (255, 0, 0) at the maximum.
Unlike intensity, temperatures outside the domain clamp to the endpoint
colors. NaN (no thermal data) maps to black.

Colors are interpolated in floating point on the 0..255 scale. Display colors
truncate that to 8 bits; LAS colors scale it to 0..65535 before truncating,
so they keep the full 16-bit resolution of the gradient.
"""

from typing import Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigurationError

UINT16_MAX = 65535
CHANNEL_MAX = 255

Color = Tuple[int, int, int]

COLD_COLOR: Color = (0, 0, 255)
HOT_COLOR: Color = (255, 0, 0)
NO_DATA_COLOR: Color = (0, 0, 0)


class ColorGradient:
    """Linear color gradient over a temperature domain."""

    def __init__(self, stops: Sequence[Tuple[float, Color]]):
        """
        Initialize the gradient.

        Args:
            stops: (temperature, (r, g, b)) pairs with strictly increasing
                temperatures and 8-bit channel values.

        Raises:
            ConfigurationError: If fewer than two stops are given, the domain
                is not strictly increasing, or a channel is outside [0, 255].
        """
        if len(stops) < 2:
            raise ConfigurationError("A color gradient needs at least two stops")

        self.domain = np.array([float(value) for value, _ in stops])
        self.colors = np.array([color for _, color in stops], dtype=np.float64)

        if not np.all(np.isfinite(self.domain)):
            raise ConfigurationError(f"Gradient stops must be finite, got {self.domain.tolist()}")
        if np.any(np.diff(self.domain) <= 0):
            raise ConfigurationError(
                f"Gradient stops must be strictly increasing, got {self.domain.tolist()}"
            )
        if self.colors.shape != (len(stops), 3) or np.any((self.colors < 0) | (self.colors > 255)):
            raise ConfigurationError("Gradient colors must be (r, g, b) triples in [0, 255]")

    @classmethod
    def two_stop(
        cls,
        min_temperature: float,
        max_temperature: float,
        cold: Color = COLD_COLOR,
        hot: Color = HOT_COLOR,
    ) -> "ColorGradient":
        """Gradient from ``cold`` at the minimum to ``hot`` at the maximum."""
        return cls([(min_temperature, cold), (max_temperature, hot)])

    def _channels(self, values: np.ndarray) -> np.ndarray:
        """Interpolated (N, 3) float channels on the 0..255 scale; NaN rows black."""
        channels = np.stack(
            [np.interp(values, self.domain, self.colors[:, channel]) for channel in range(3)],
            axis=-1,
        )
        channels[np.isnan(values)] = NO_DATA_COLOR
        return channels

    def get(self, values: Union[float, np.ndarray]) -> np.ndarray:
        """
        Look up colors.

        Args:
            values: Temperature(s), scalar or (N,).

        Returns:
            np.ndarray: uint8 colors, (3,) or (N, 3). NaN maps to black.
        """
        values = np.asarray(values, dtype=np.float64)
        colors = np.trunc(self._channels(np.atleast_1d(values))).astype(np.uint8)
        return colors[0] if values.ndim == 0 else colors

    def get_wide(self, values: Union[float, np.ndarray]) -> np.ndarray:
        """Like get(), but uint16 colors with 255 mapped to 65535."""
        values = np.asarray(values, dtype=np.float64)
        channels = self._channels(np.atleast_1d(values)) * (UINT16_MAX / CHANNEL_MAX)
        colors = np.trunc(channels).astype(np.uint16)
        return colors[0] if values.ndim == 0 else colors


class AttributeMapper:
    """Map reflectance to intensity and temperature to color."""

    def __init__(
        self,
        min_reflectance: float,
        max_reflectance: float,
        gradient: ColorGradient,
        clamp_intensity: bool = False,
    ):
        """
        Initialize the mapper.

        Args:
            min_reflectance: Reflectance mapped to intensity 0.
            max_reflectance: Reflectance mapped to intensity 65535.
            gradient: Temperature color gradient.
            clamp_intensity: Saturate out-of-range intensities instead of wrapping.

        Raises:
            ConfigurationError: If the reflectance range is empty or not finite.
        """
        if not (np.isfinite(min_reflectance) and np.isfinite(max_reflectance)):
            raise ConfigurationError("Reflectance range must be finite")
        if max_reflectance == min_reflectance:
            raise ConfigurationError(
                f"Reflectance range is empty: min == max == {min_reflectance}"
            )

        self.min_reflectance = float(min_reflectance)
        self.max_reflectance = float(max_reflectance)
        self.gradient = gradient
        self.clamp_intensity = clamp_intensity

    def reflectance_to_intensity(self, value: Union[float, np.ndarray]) -> Union[int, np.ndarray]:
        """
        Rescale reflectance to the 16-bit intensity range.

        Args:
            value: Reflectance(s), scalar or (N,).

        Returns:
            int for a scalar input, uint16 array otherwise. Non-finite
            reflectance maps to 0.
        """
        value = np.asarray(value, dtype=np.float64)
        scaled = np.round(
            UINT16_MAX * (value - self.min_reflectance)
            / (self.max_reflectance - self.min_reflectance)
        )
        scaled = np.where(np.isfinite(scaled), scaled, 0.0)

        if self.clamp_intensity:
            intensity = np.clip(scaled, 0, UINT16_MAX)
        else:
            # Floor modulo matches the unsigned cast for negative values too.
            intensity = np.mod(scaled, UINT16_MAX + 1)

        intensity = intensity.astype(np.uint16)
        return int(intensity) if intensity.ndim == 0 else intensity

    def temperature_to_color(self, value: Union[float, np.ndarray]) -> Union[Color, np.ndarray]:
        """
        Map temperature(s) to display color.

        Args:
            value: Temperature(s) in °C, scalar or (N,). NaN means no data.

        Returns:
            (r, g, b) tuple for a scalar input, uint8 (N, 3) array otherwise.
        """
        colors = self.gradient.get(value)
        if colors.ndim == 1:
            return tuple(int(channel) for channel in colors)
        return colors

    def temperature_to_las_color(self, value: Union[float, np.ndarray]) -> Union[Color, np.ndarray]:
        """Map temperature(s) to 16-bit LAS color, (r, g, b) or uint16 (N, 3)."""
        colors = self.gradient.get_wide(value)
        if colors.ndim == 1:
            return tuple(int(channel) for channel in colors)
        return colors
