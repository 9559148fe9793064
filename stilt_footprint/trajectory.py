"""
Trajectory preprocessing.

Resamples backward particle trajectories onto the canonical time grid and
rescales the resampled influence so every time epoch keeps the total weight of
the recorded samples.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import FootprintConfig, canonical_times
from .errors import InputError
from .grid import GridSpec

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ('trajectory_id', 'time', 'longitude', 'latitude', 'weight')

# Normalized (lowercase alphanumeric) aliases accepted for each column
COLUMN_ALIASES = {
    'trajectory_id': {'trajectoryid', 'indx', 'index', 'id', 'particleid', 'particle', 'traj', 'trajid'},
    'time': {'time', 't', 'timemin', 'minutes'},
    'longitude': {'longitude', 'long', 'lon', 'lng', 'x'},
    'latitude': {'latitude', 'lati', 'lat', 'y'},
    'weight': {'weight', 'foot', 'footprint', 'influence', 'sensitivity'},
}


@dataclass
class PreprocessedEnsemble:
    """Particle samples aligned to the canonical time grid."""

    trajectory_id: np.ndarray
    time: np.ndarray
    longitude: np.ndarray
    latitude: np.ndarray
    weight: np.ndarray
    n_trajectories: int

    def __len__(self) -> int:
        return len(self.time)

    @property
    def times(self) -> np.ndarray:
        """Distinct time values, ordered from 0 toward negative."""
        return np.unique(self.time)[::-1]


def _norm(s) -> str:
    return ''.join(ch for ch in str(s).lower() if ch.isalnum())


def read_ensemble(ensemble) -> pd.DataFrame:
    """
    Validate a trajectory ensemble and return it with canonical column names.

    Args:
        ensemble: DataFrame (or mapping of columns) with trajectory id, time,
            longitude, latitude and weight columns. Extra columns are ignored.

    Returns:
        DataFrame with exactly the REQUIRED_COLUMNS, numeric and without
        missing values
    """
    if ensemble is None:
        raise InputError("Trajectory ensemble is empty")
    if not isinstance(ensemble, pd.DataFrame):
        try:
            ensemble = pd.DataFrame(ensemble)
        except (TypeError, ValueError) as e:
            raise InputError(f"Could not read trajectory ensemble: {e}")

    raw_to_norm = {c: _norm(c) for c in ensemble.columns}

    def find_col(key: str) -> str:
        # Exact canonical names win over aliases
        if key in ensemble.columns:
            return key
        wanted = COLUMN_ALIASES[key]
        for raw, n in raw_to_norm.items():
            if n in wanted:
                return raw
        raise InputError(f"Missing required column (or alias) for '{key}'. Found: {list(ensemble.columns)}")

    columns = {find_col(key): key for key in REQUIRED_COLUMNS}
    df = ensemble[list(columns)].rename(columns=columns)

    if df.empty:
        raise InputError("Trajectory ensemble is empty")

    # Trajectory ids are opaque labels; only positions, times and weights are numeric
    numeric = ['time', 'longitude', 'latitude', 'weight']
    try:
        df[numeric] = df[numeric].apply(pd.to_numeric)
    except (TypeError, ValueError) as e:
        raise InputError(f"Trajectory ensemble contains non-numeric values: {e}")

    n_before = len(df)
    df = df.replace([np.inf, -np.inf], np.nan).dropna()
    if len(df) < n_before:
        logger.warning("Dropped %d samples with missing values", n_before - len(df))
    if df.empty:
        raise InputError("Trajectory ensemble has no complete samples")

    if (df['time'] > 0).any():
        logger.warning("%d samples have positive time offsets", int((df['time'] > 0).sum()))
    if (df['weight'] < 0).any():
        logger.warning("%d samples have negative weight", int((df['weight'] < 0).sum()))

    return df.reset_index(drop=True)


def interpolate_trajectory(
    time: np.ndarray,
    lon: np.ndarray,
    lat: np.ndarray,
    weight: np.ndarray,
    canonical: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Merge one trajectory with the canonical time grid.

    Recorded samples are kept as they are. Canonical times that were not
    recorded are filled by linear interpolation between the neighbouring
    recorded times; canonical times outside the recorded span are dropped.

    Args:
        time: Recorded time offsets of the trajectory
        lon: Recorded longitudes
        lat: Recorded latitudes
        weight: Recorded influence weights
        canonical: Canonical time grid

    Returns:
        Tuple of (time, lon, lat, weight) ordered from 0 toward negative time
    """
    order = np.argsort(time, kind='stable')
    time = np.asarray(time, dtype=float)[order]
    lon = np.asarray(lon, dtype=float)[order]
    lat = np.asarray(lat, dtype=float)[order]
    weight = np.asarray(weight, dtype=float)[order]

    # Canonical times without an exact match inside the recorded span
    fill = canonical[(canonical >= time[0]) & (canonical <= time[-1])]
    fill = fill[~np.isin(fill, time)]

    out_time = np.concatenate([time, fill])
    out_lon = np.concatenate([lon, np.interp(fill, time, lon)])
    out_lat = np.concatenate([lat, np.interp(fill, time, lat)])
    out_weight = np.concatenate([weight, np.interp(fill, time, weight)])

    order = np.argsort(-out_time, kind='stable')
    return out_time[order], out_lon[order], out_lat[order], out_weight[order]


def epoch_index(time: np.ndarray, bounds) -> np.ndarray:
    """
    Assign each time to a renormalization epoch.

    Epoch k holds time magnitudes in [bounds[k-1], bounds[k]) with an implicit
    lower bound of 0; the last epoch also includes its upper bound. Times
    beyond the last bound get index -1.
    """
    magnitude = np.abs(np.asarray(time, dtype=float))
    bounds = np.asarray(bounds, dtype=float)
    index = np.searchsorted(bounds, magnitude, side='right')
    index[magnitude == bounds[-1]] = len(bounds) - 1
    index[index >= len(bounds)] = -1
    return index


def renormalize_epochs(
    raw_time: np.ndarray,
    raw_weight: np.ndarray,
    time: np.ndarray,
    weight: np.ndarray,
    config: Optional[FootprintConfig] = None
) -> np.ndarray:
    """
    Rescale resampled weights so each epoch keeps its recorded total.

    Args:
        raw_time: Time offsets of the recorded samples
        raw_weight: Weights of the recorded samples
        time: Time offsets of the resampled samples
        weight: Weights of the resampled samples
        config: Footprint configuration (epoch bounds)

    Returns:
        New array of rescaled weights. Samples outside every epoch are
        returned unchanged.
    """
    config = config or FootprintConfig()
    raw_epoch = epoch_index(raw_time, config.time_bounds)
    epoch = epoch_index(time, config.time_bounds)
    scaled = np.array(weight, dtype=float, copy=True)

    for k in range(len(config.time_bounds)):
        mask = epoch == k
        raw_total = float(np.sum(raw_weight[raw_epoch == k]))
        total = float(np.sum(scaled[mask]))
        if total > 0 and raw_total > 0:
            scaled[mask] *= raw_total / total
        elif mask.any():
            logger.debug("Epoch %d has zero weight (raw=%g, resampled=%g); scaling by zero",
                         k, raw_total, total)
            scaled[mask] = 0.0
    return scaled


def preprocess(
    ensemble,
    grid: GridSpec,
    config: Optional[FootprintConfig] = None
) -> PreprocessedEnsemble:
    """
    Align a trajectory ensemble to the canonical time grid.

    Samples outside the grid are dropped before interpolation, every
    trajectory is merged with the canonical time grid, times are rounded and
    weights are renormalized per epoch against all recorded samples, so
    influence recorded outside the grid is carried by the samples inside it.

    Args:
        ensemble: Trajectory ensemble (see read_ensemble)
        grid: Footprint grid
        config: Footprint configuration

    Returns:
        PreprocessedEnsemble with positive-weight samples inside the grid
    """
    config = config or FootprintConfig()
    grid = GridSpec.from_value(grid)
    df = read_ensemble(ensemble)
    n_trajectories = int(df['trajectory_id'].nunique())
    raw_time = df['time'].to_numpy()
    raw_weight = df['weight'].to_numpy()

    inside = grid.contains(df['longitude'].to_numpy(), df['latitude'].to_numpy())
    df = df[inside]
    logger.debug("%d of %d samples inside grid extent", len(df), len(inside))

    canonical = canonical_times(config)
    ids, times, lons, lats, weights = [], [], [], [], []
    for traj_id, traj in df.groupby('trajectory_id', sort=True):
        t, x, y, w = interpolate_trajectory(
            traj['time'].to_numpy(),
            traj['longitude'].to_numpy(),
            traj['latitude'].to_numpy(),
            traj['weight'].to_numpy(),
            canonical,
        )
        ids.append(np.full(len(t), traj_id))
        times.append(t)
        lons.append(x)
        lats.append(y)
        weights.append(w)

    if times:
        traj_ids = np.concatenate(ids)
        # Adding 0.0 turns -0.0 into 0.0 so time buckets compare equal
        time = np.round(np.concatenate(times), config.time_decimals) + 0.0
        lon = np.concatenate(lons)
        lat = np.concatenate(lats)
        weight = renormalize_epochs(raw_time, raw_weight, time, np.concatenate(weights), config)
    else:
        traj_ids = np.array([], dtype=df['trajectory_id'].dtype)
        time = lon = lat = weight = np.array([], dtype=float)

    keep = (weight > 0) & grid.contains(lon, lat)
    result = PreprocessedEnsemble(
        trajectory_id=traj_ids[keep],
        time=time[keep],
        longitude=lon[keep],
        latitude=lat[keep],
        weight=weight[keep],
        n_trajectories=n_trajectories,
    )
    logger.debug("Preprocessed %d trajectories into %d samples over %d time steps",
                 n_trajectories, len(result), len(result.times))
    return result
