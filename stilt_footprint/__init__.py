"""
STILT footprint - time-integrated influence footprints from backward particle trajectories.

This package smooths an ensemble of backward Lagrangian trajectories with
adaptive Gaussian kernels onto a regular longitude/latitude grid.
"""

__version__ = "0.1.0"
__author__ = "stilt_footprint contributors"

from .config import FootprintConfig, load_config, canonical_times
from .errors import FootprintError, InputError, SerializationError
from .footprint import FootprintCalculator, compute_footprint
from .grid import GridSpec
from .output import FootprintOutput, write_footprint

__all__ = [
    "FootprintCalculator",
    "FootprintConfig",
    "FootprintError",
    "FootprintOutput",
    "GridSpec",
    "InputError",
    "SerializationError",
    "canonical_times",
    "compute_footprint",
    "load_config",
    "write_footprint",
]
