"""
Tests for trajectory preprocessing.
"""

import numpy as np
import pandas as pd
import pytest

from stilt_footprint import FootprintConfig, GridSpec, InputError, canonical_times
from stilt_footprint.trajectory import (
    epoch_index, interpolate_trajectory, preprocess, read_ensemble, renormalize_epochs
)


GRID = GridSpec(-113.0, -110.0, 0.1, 39.0, 42.0, 0.1)


def make_ensemble(n_trajectories=10, seed=3):
    rng = np.random.default_rng(seed)
    times = -np.arange(0.0, 41.0, 1.0)
    frames = []
    for i in range(1, n_trajectories + 1):
        frames.append(pd.DataFrame({
            'trajectory_id': i,
            'time': times,
            'longitude': -111.5 + 0.005 * times + rng.normal(0, 0.01, len(times)),
            'latitude': 40.5 - 0.003 * times + rng.normal(0, 0.01, len(times)),
            'weight': rng.uniform(0.001, 0.01, len(times)),
        }))
    return pd.concat(frames, ignore_index=True)


def test_canonical_times():
    """Test the canonical time grid layout."""
    times = canonical_times()

    assert len(times) == 311
    assert times[0] == 0.0
    assert times[-1] == -100.0
    assert np.all(np.diff(times) < 0)
    for t in (-0.1, -10.0, -10.2, -20.0, -20.5, -99.5):
        assert t in times


def test_interpolate_trajectory():
    """Test canonical times are filled by linear interpolation."""
    time = np.array([-2.0, 0.0, -1.0])
    lon = np.array([2.0, 0.0, 1.0])
    lat = np.array([10.0, 0.0, 5.0])
    weight = np.array([0.2, 0.0, 0.1])

    t, x, y, w = interpolate_trajectory(time, lon, lat, weight, canonical_times())

    assert len(t) == 21
    assert t[0] == 0.0 and t[-1] == -2.0
    assert np.all(np.diff(t) < 0)
    i = np.argmin(np.abs(t + 0.5))
    assert x[i] == pytest.approx(0.5)
    assert y[i] == pytest.approx(2.5)
    assert w[i] == pytest.approx(0.05)


def test_interpolate_keeps_recorded_samples():
    """Test recorded samples between canonical times are kept."""
    time = np.array([0.0, -0.25, -0.5])
    values = np.array([0.0, 1.0, 2.0])

    t, x, _, _ = interpolate_trajectory(time, values, values, values, canonical_times())

    assert list(t) == [0.0, -0.1, -0.2, -0.25, -0.3, -0.4, -0.5]
    assert x[3] == 1.0


def test_interpolate_drops_times_outside_span():
    """Test canonical times outside the recorded span are not extrapolated."""
    time = np.array([-3.0, -4.0])
    values = np.array([1.0, 2.0])

    t, _, _, _ = interpolate_trajectory(time, values, values, values, canonical_times())

    assert t.max() == -3.0
    assert t.min() == -4.0


def test_epoch_index():
    """Test epoch boundaries by time magnitude."""
    times = np.array([0.0, -9.9, -10.0, -19.9, -20.0, -100.0, -100.5])

    assert list(epoch_index(times, (10.0, 20.0, 100.0))) == [0, 0, 1, 1, 2, 2, -1]


def test_renormalize_epochs():
    """Test each epoch is rescaled to its recorded total."""
    raw_time = np.array([0.0, -5.0, -15.0, -50.0])
    raw_weight = np.array([1.0, 1.0, 3.0, 4.0])
    time = np.array([0.0, -1.0, -2.0, -15.0, -16.0, -50.0, -120.0])
    weight = np.ones(7)

    scaled = renormalize_epochs(raw_time, raw_weight, time, weight)

    assert scaled[:3].sum() == pytest.approx(2.0)
    assert scaled[3:5].sum() == pytest.approx(3.0)
    assert scaled[5] == pytest.approx(4.0)
    assert scaled[6] == 1.0


def test_renormalize_zero_weight_epoch():
    """Test an epoch without recorded weight scales to zero instead of NaN."""
    raw_time = np.array([0.0, -15.0])
    raw_weight = np.array([0.0, 2.0])
    time = np.array([0.0, -1.0, -15.0])
    weight = np.array([0.5, 0.5, 1.0])

    scaled = renormalize_epochs(raw_time, raw_weight, time, weight)

    assert np.all(np.isfinite(scaled))
    assert list(scaled[:2]) == [0.0, 0.0]
    assert scaled[2] == pytest.approx(2.0)


def test_preprocess_conserves_epoch_mass():
    """Test per-epoch weight totals survive resampling."""
    ensemble = make_ensemble()
    particles = preprocess(ensemble, GRID)

    raw_epoch = epoch_index(ensemble['time'].to_numpy(), (10.0, 20.0, 100.0))
    epoch = epoch_index(particles.time, (10.0, 20.0, 100.0))
    raw_weight = ensemble['weight'].to_numpy()
    for k in range(3):
        assert particles.weight[epoch == k].sum() == pytest.approx(raw_weight[raw_epoch == k].sum(), rel=1e-12)


def test_preprocess_keeps_mass_of_trajectory_leaving_grid():
    """Test epoch totals include samples recorded outside the grid."""
    ensemble = pd.DataFrame({
        'trajectory_id': 1,
        'time': [0.0, -1.0, -2.0, -3.0, -4.0, -5.0],
        'longitude': [0.5, 0.6, 0.7, 0.8, 1.5, 1.6],
        'latitude': 0.5,
        'weight': 1.0,
    })
    grid = GridSpec(0.0, 1.0, 0.1, 0.0, 1.0, 0.1)
    particles = preprocess(ensemble, grid)

    assert particles.weight[epoch_index(particles.time, (10.0, 20.0, 100.0)) == 0].sum() == pytest.approx(6.0)
    assert particles.time.min() == -3.0
    assert np.all(grid.contains(particles.longitude, particles.latitude))


def test_preprocess_output():
    """Test preprocessed samples are on the canonical grid and inside the domain."""
    ensemble = make_ensemble()
    particles = preprocess(ensemble, GRID)

    assert particles.n_trajectories == 10
    assert len(particles) == 10 * len(canonical_times()[canonical_times() >= -40.0])
    assert np.all(np.isin(particles.time, canonical_times()))
    assert np.all(particles.weight > 0)
    assert np.all(GRID.contains(particles.longitude, particles.latitude))
    assert particles.times[0] == 0.0


def test_preprocess_counts_trajectories_outside_grid():
    """Test trajectories outside the domain still count toward normalization."""
    ensemble = make_ensemble()
    outside = ensemble[ensemble['trajectory_id'] == 1].copy()
    outside['trajectory_id'] = 99
    outside['longitude'] += 10.0
    particles = preprocess(pd.concat([ensemble, outside]), GRID)

    assert particles.n_trajectories == 11
    assert 99 not in particles.trajectory_id


def test_preprocess_custom_epochs():
    """Test configurable time segments change the canonical grid."""
    config = FootprintConfig(time_bounds=(5.0, 40.0), time_resolutions=(0.5, 1.0))
    particles = preprocess(make_ensemble(), GRID, config)

    assert np.all(np.isin(particles.time, canonical_times(config)))
    assert -4.5 in particles.time
    assert -0.1 not in particles.time


def test_read_ensemble_errors():
    """Test structural problems in the ensemble are rejected."""
    ensemble = make_ensemble()

    with pytest.raises(InputError, match="latitude"):
        read_ensemble(ensemble.drop(columns=['latitude']))
    with pytest.raises(InputError):
        read_ensemble(pd.DataFrame(columns=ensemble.columns))
    with pytest.raises(InputError):
        read_ensemble(None)

    bad = ensemble.astype({'weight': object})
    bad.loc[0, 'weight'] = 'heavy'
    with pytest.raises(InputError):
        read_ensemble(bad)


def test_read_ensemble_drops_missing_values():
    """Test incomplete samples are dropped."""
    ensemble = make_ensemble()
    ensemble.loc[3, 'longitude'] = np.nan

    df = read_ensemble(ensemble)

    assert len(df) == len(ensemble) - 1
    assert list(df.columns) == ['trajectory_id', 'time', 'longitude', 'latitude', 'weight']


def test_read_ensemble_string_ids():
    """Test non-numeric trajectory ids pass through unchanged."""
    df = read_ensemble({
        'trajectory_id': ['r1-a', 'r1-a', 'r1-b'],
        'time': ['0', '-1', '0'],
        'longitude': [-111.0, -111.1, -111.0],
        'latitude': [40.0, 40.1, 40.0],
        'weight': [0.1, 0.2, 0.1],
    })

    assert list(df['trajectory_id']) == ['r1-a', 'r1-a', 'r1-b']
    assert df['time'].dtype.kind == 'i'
    assert list(df['time']) == [0, -1, 0]


def test_read_ensemble_mapping():
    """Test a plain mapping of columns is accepted."""
    df = read_ensemble({
        'indx': [1, 1, 2],
        'time': [0.0, -1.0, 0.0],
        'long': [-111.0, -111.1, -111.0],
        'lati': [40.0, 40.1, 40.0],
        'foot': [0.1, 0.2, 0.1],
    })

    assert len(df) == 3
    assert df['trajectory_id'].nunique() == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
