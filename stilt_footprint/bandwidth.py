"""
Particle spread estimation.

The kernel bandwidth at each time step follows from how far apart the active
particles are, estimated by bootstrap-sampling their mean pairwise distance.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist

from .config import FootprintConfig
from .trajectory import PreprocessedEnsemble

logger = logging.getLogger(__name__)


def mean_pairwise_distance(lon: np.ndarray, lat: np.ndarray) -> float:
    """
    Mean Euclidean distance over all pairs of positions.

    Returns:
        Mean distance in degrees, NaN for fewer than two positions
    """
    if len(lon) < 2:
        return np.nan
    points = np.column_stack([lon, lat])
    return float(np.mean(pdist(points)))


def bootstrap_distance(
    lon: np.ndarray,
    lat: np.ndarray,
    rng: np.random.Generator,
    size: int = 50,
    iterations: int = 4
) -> float:
    """
    Bootstrap estimate of the mean pairwise particle distance.

    Draws `iterations` subsamples with replacement of min(size, n) positions
    and averages their mean pairwise distances.

    Args:
        lon: Particle longitudes
        lat: Particle latitudes
        rng: Random generator used for resampling
        size: Subsample size
        iterations: Number of subsamples

    Returns:
        Distance estimate in degrees; 0.0 with fewer than two particles
    """
    lon = np.asarray(lon, dtype=float)
    lat = np.asarray(lat, dtype=float)
    n = len(lon)
    if n < 2:
        return 0.0

    k = min(size, n)
    means = np.empty(iterations)
    for i in range(iterations):
        idx = rng.integers(0, n, size=k)
        means[i] = mean_pairwise_distance(lon[idx], lat[idx])
    return float(np.mean(means))


def estimate_spread(
    particles: PreprocessedEnsemble,
    rng: np.random.Generator,
    config: Optional[FootprintConfig] = None
) -> pd.DataFrame:
    """
    Estimate particle spread for every time step.

    Args:
        particles: Preprocessed particle samples
        rng: Random generator for bootstrap sampling
        config: Footprint configuration

    Returns:
        DataFrame with columns time, distance, latitude and n_particles, one
        row per distinct time ordered from 0 toward negative
    """
    config = config or FootprintConfig()
    records = []
    for t in particles.times:
        mask = particles.time == t
        lon = particles.longitude[mask]
        lat = particles.latitude[mask]
        if len(lon) < 2:
            logger.debug("Time %.1f has %d active particle(s); using minimum bandwidth", t, len(lon))
        distance = bootstrap_distance(
            lon, lat, rng,
            size=config.bootstrap_size,
            iterations=config.bootstrap_iterations,
        )
        records.append((t, distance, float(np.mean(lat)), len(lon)))

    return pd.DataFrame(records, columns=['time', 'distance', 'latitude', 'n_particles'])
