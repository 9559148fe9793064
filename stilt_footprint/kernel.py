"""
Gaussian smoothing kernels.

Each time step spreads particle influence with an isotropic Gaussian whose
standard deviation grows with the particle spread at that time.
"""

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from .config import FootprintConfig
from .grid import GridSpec

logger = logging.getLogger(__name__)

# Below this cos(latitude) the distance term is undefined; only the floor is used
MIN_COS_LATITUDE = 1e-3


def kernel_bandwidth(
    distance: float,
    latitude: float,
    xres: float,
    yres: float,
    config: Optional[FootprintConfig] = None
) -> float:
    """
    Kernel standard deviation in degrees.

    bandwidth = distance / (40 * cos(latitude)) + max(xres, yres) / 8,
    multiplied by the configured smooth factor.
    At the poles only the resolution term is used.

    Args:
        distance: Mean pairwise particle distance (degrees)
        latitude: Mean particle latitude (degrees)
        xres: Grid longitude resolution
        yres: Grid latitude resolution
        config: Footprint configuration

    Returns:
        Bandwidth (degrees)
    """
    config = config or FootprintConfig()
    spread = 0.0
    if distance > 0:
        coslat = np.cos(np.radians(latitude))
        if coslat < MIN_COS_LATITUDE:
            logger.warning("Latitude %.4f too close to a pole for the distance term; "
                           "using the minimum bandwidth", latitude)
        else:
            spread = distance / (config.distance_calibration * coslat)
    floor = max(xres, yres) / config.floor_divisor
    return float(config.smooth_factor * (spread + floor))


def gaussian_kernel(
    xres: float,
    yres: float,
    sigma: float,
    truncation: float = 3.0
) -> np.ndarray:
    """
    Normalized 2D Gaussian kernel on the grid resolution.

    Args:
        xres: Cell width (degrees)
        yres: Cell height (degrees)
        sigma: Standard deviation (degrees)
        truncation: Half-width of the kernel in standard deviations

    Returns:
        Array of shape (ny, nx), both odd, summing to 1
    """
    d = truncation * sigma
    nx = 1 + 2 * int(np.floor(d / xres))
    ny = 1 + 2 * int(np.floor(d / yres))

    dx = (np.arange(nx) - (nx - 1) / 2) * xres
    dy = (np.arange(ny) - (ny - 1) / 2) * yres
    r2 = dy[:, np.newaxis] ** 2 + dx[np.newaxis, :] ** 2

    k = 1 / (2 * np.pi * sigma ** 2) * np.exp(-r2 / (2 * sigma ** 2))
    return k / np.sum(k)


def build_kernels(
    spread: pd.DataFrame,
    grid: GridSpec,
    config: Optional[FootprintConfig] = None
) -> Dict[float, np.ndarray]:
    """
    Build one kernel per time step.

    Args:
        spread: Output of estimate_spread
        grid: Footprint grid
        config: Footprint configuration

    Returns:
        Mapping of time value to kernel
    """
    config = config or FootprintConfig()
    kernels = {}
    for row in spread.itertuples(index=False):
        sigma = kernel_bandwidth(row.distance, row.latitude, grid.xres, grid.yres, config)
        kernels[row.time] = gaussian_kernel(grid.xres, grid.yres, sigma, config.kernel_truncation)
    return kernels


def halo_size(
    spread: pd.DataFrame,
    grid: GridSpec,
    config: Optional[FootprintConfig] = None
) -> Tuple[int, int]:
    """
    Halo needed to hold the largest kernel without truncation.

    Uses the largest observed distance at the observed latitude with the
    smallest cosine, which bounds every per-time bandwidth from above.
    Polar latitudes, where only the minimum bandwidth applies, are skipped.

    Returns:
        Tuple of (xbuf, ybuf) in cells
    """
    config = config or FootprintConfig()
    if spread.empty:
        return 0, 0
    distance = float(spread['distance'].max())
    lats = spread['latitude'].to_numpy()
    # Polar time steps fall back to the minimum bandwidth and never set the halo
    usable = lats[np.cos(np.radians(lats)) >= MIN_COS_LATITUDE]
    if usable.size:
        lats = usable
    latitude = float(lats[np.argmax(np.abs(lats))])
    sigma = kernel_bandwidth(distance, latitude, grid.xres, grid.yres, config)
    k = gaussian_kernel(grid.xres, grid.yres, sigma, config.kernel_truncation)
    ybuf = (k.shape[0] - 1) // 2
    xbuf = (k.shape[1] - 1) // 2
    logger.debug("Largest kernel %dx%d (sigma=%.4g deg); halo of %d x %d cells",
                 k.shape[0], k.shape[1], sigma, ybuf, xbuf)
    return xbuf, ybuf
