"""
Configuration for footprint calculation.

Holds the empirical constants of the footprint method (time grid segments,
bandwidth calibration, bootstrap settings) so they can be tuned without
touching the algorithm.
"""

import json
import math
from dataclasses import dataclass, fields
from typing import Optional, Tuple

import numpy as np

from .errors import InputError


@dataclass
class FootprintConfig:
    """
    Settings for a footprint calculation.

    Attributes:
        time_bounds: Upper time magnitudes (minutes) of the canonical time grid
            segments. The same bounds define the mass renormalization epochs.
        time_resolutions: Time step (minutes) used inside each segment
        time_decimals: Decimal places times are rounded to after interpolation
        distance_calibration: Degrees-per-distance calibration of the bandwidth
        floor_divisor: Minimum bandwidth is max(xres, yres) / floor_divisor
        bootstrap_size: Particles drawn per bootstrap subsample
        bootstrap_iterations: Number of bootstrap subsamples per time step
        kernel_truncation: Kernel half-width in standard deviations
        smooth_factor: Multiplier applied to every kernel bandwidth
        time_integrate: Sum over time steps (True) or keep one layer per time
        n_workers: Threads used to build per-time footprint layers
        seed: Seed for the bootstrap random generator
    """

    time_bounds: Tuple[float, ...] = (10.0, 20.0, 100.0)
    time_resolutions: Tuple[float, ...] = (0.1, 0.2, 0.5)
    time_decimals: int = 1
    distance_calibration: float = 40.0
    floor_divisor: float = 8.0
    bootstrap_size: int = 50
    bootstrap_iterations: int = 4
    kernel_truncation: float = 3.0
    smooth_factor: float = 1.0
    time_integrate: bool = True
    n_workers: int = 1
    seed: Optional[int] = None

    def __post_init__(self):
        self.time_bounds = tuple(float(b) for b in self.time_bounds)
        self.time_resolutions = tuple(float(r) for r in self.time_resolutions)

        if not self.time_bounds:
            raise InputError("time_bounds must contain at least one value")
        if len(self.time_bounds) != len(self.time_resolutions):
            raise InputError(
                f"time_bounds and time_resolutions differ in length: "
                f"{len(self.time_bounds)} != {len(self.time_resolutions)}"
            )
        previous = 0.0
        for bound, res in zip(self.time_bounds, self.time_resolutions):
            if not bound > previous:
                raise InputError(f"time_bounds must be positive and increasing: {self.time_bounds}")
            if not res > 0:
                raise InputError(f"time_resolutions must be positive: {self.time_resolutions}")
            previous = bound

        for name in ("distance_calibration", "floor_divisor", "kernel_truncation", "smooth_factor"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InputError(f"{name} must be a positive number, got {value!r}")
        if self.time_decimals < 0:
            raise InputError(f"time_decimals must be >= 0, got {self.time_decimals}")
        if self.bootstrap_size < 2:
            raise InputError(f"bootstrap_size must be >= 2, got {self.bootstrap_size}")
        if self.bootstrap_iterations < 1:
            raise InputError(f"bootstrap_iterations must be >= 1, got {self.bootstrap_iterations}")
        if self.n_workers < 1:
            raise InputError(f"n_workers must be >= 1, got {self.n_workers}")

    @classmethod
    def from_dict(cls, values: dict) -> "FootprintConfig":
        """Build a configuration from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InputError(f"Unknown configuration keys: {unknown}")
        return cls(**values)


def load_config(config_file: str) -> FootprintConfig:
    """Load configuration from JSON file."""
    with open(config_file, 'r') as f:
        return FootprintConfig.from_dict(json.load(f))


def canonical_times(config: Optional[FootprintConfig] = None) -> np.ndarray:
    """
    Build the canonical time grid.

    Times run from 0 toward negative values. The first segment includes 0 and
    every segment ends exactly on its bound, e.g. with the defaults
    0, -0.1, ..., -10, -10.2, ..., -20, -20.5, ..., -100.

    Returns:
        Strictly decreasing array of time offsets (minutes)
    """
    config = config or FootprintConfig()
    segments = [np.zeros(1)]
    start = 0.0
    for bound, res in zip(config.time_bounds, config.time_resolutions):
        n = int(round((bound - start) / res))
        segments.append(-(start + res * np.arange(1, n + 1)))
        start = bound
    times = np.round(np.concatenate(segments), config.time_decimals)
    return times
