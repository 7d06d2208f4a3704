"""
Temperature Aggregation.

A point may be seen by several overlapping thermal images. Their samples are
averaged rather than prioritized, which avoids visible seams where one
image's coverage ends and another's begins. There is no outlier rejection.

The mean is computed so that the order of the images never changes the
result: single points use an exactly rounded sum (``math.fsum``), chunks sort
the samples of each point before summing.
"""

import math
from typing import Iterable, NamedTuple, Union

import numpy as np


class Measured(NamedTuple):
    """Aggregated temperature in °C."""

    value: float


class _NoData:
    """No image saw the point."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA"


NO_DATA = _NoData()

AggregateResult = Union[Measured, _NoData]


class TemperatureAggregator:
    """Combine per-image temperature samples into one value per point."""

    def aggregate(self, samples: Iterable[float]) -> AggregateResult:
        """
        Aggregate the samples of one point.

        Args:
            samples: Temperatures from every image that saw the point.

        Returns:
            ``Measured(mean)`` or ``NO_DATA`` when there are no samples.
        """
        samples = [float(sample) for sample in samples]
        if not samples:
            return NO_DATA
        return Measured(math.fsum(samples) / len(samples))

    def aggregate_stack(self, stack: np.ndarray) -> np.ndarray:
        """
        Aggregate a chunk of points.

        Args:
            stack: Samples (K, N) from K images for N points, NaN where an
                image did not see the point. K may be zero.

        Returns:
            np.ndarray: Mean temperature (N,), NaN where no image saw the point.
        """
        stack = np.asarray(stack, dtype=np.float64)
        if stack.ndim != 2:
            raise ValueError(f"Expected a (K, N) sample stack, got shape {stack.shape}")
        if stack.shape[0] == 0:
            return np.full(stack.shape[1], np.nan)

        # Sorting fixes the summation order; NaNs sort last.
        ordered = np.sort(stack, axis=0)
        counts = np.count_nonzero(~np.isnan(ordered), axis=0)
        totals = np.nansum(ordered, axis=0)

        means = np.full(stack.shape[1], np.nan)
        seen = counts > 0
        means[seen] = totals[seen] / counts[seen]
        return means
