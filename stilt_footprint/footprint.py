"""
Main footprint module integrating all components.

Turns an ensemble of backward particle trajectories into a time-integrated
influence footprint on a regular longitude/latitude grid.
"""

import logging
from typing import Callable, Dict, Optional, Union

import numpy as np
import pandas as pd
import xarray as xr

from .aggregate import accumulate, estimate_grid_memory, grid_particles, layers_held, sum_layers
from .bandwidth import estimate_spread
from .config import FootprintConfig
from .grid import GridSpec
from .kernel import build_kernels, halo_size
from .output import composite, write_footprint
from .trajectory import PreprocessedEnsemble, preprocess

logger = logging.getLogger(__name__)


class FootprintCalculator:
    """
    Footprint calculator for one grid.

    Each call to run() handles one trajectory ensemble; nothing is kept
    between runs apart from the random generator state.
    """

    def __init__(
        self,
        grid: Union[GridSpec, tuple, dict],
        config: Optional[FootprintConfig] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize footprint calculator.

        Args:
            grid: Footprint grid, as GridSpec, (xmin, xmax, xres, ymin, ymax, yres)
                or a mapping with those keys
            config: Footprint configuration
            rng: Random generator for bootstrap sampling. Defaults to a
                generator seeded with config.seed.
        """
        self.grid = GridSpec.from_value(grid)
        self.config = config or FootprintConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

    def preprocess(self, ensemble) -> PreprocessedEnsemble:
        return preprocess(ensemble, self.grid, self.config)

    def estimate_spread(self, particles: PreprocessedEnsemble) -> pd.DataFrame:
        return estimate_spread(particles, self.rng, self.config)

    def build_kernels(self, spread: pd.DataFrame) -> Dict[float, np.ndarray]:
        return build_kernels(spread, self.grid, self.config)

    def run(
        self,
        ensemble,
        output: Optional[str] = None,
        progress_callback: Optional[Callable] = None
    ) -> xr.DataArray:
        """
        Calculate the footprint of a trajectory ensemble.

        Args:
            ensemble: Trajectory ensemble with trajectory_id, time, longitude,
                latitude and weight columns
            output: Optional filename the footprint is also written to
            progress_callback: Optional callback function(time, occupied_cells)

        Returns:
            Footprint DataArray, normalized by the number of trajectories
        """
        grid = self.grid
        particles = self.preprocess(ensemble)
        n_trajectories = particles.n_trajectories

        spread = self.estimate_spread(particles)
        xbuf, ybuf = halo_size(spread, grid, self.config)
        kernels = self.build_kernels(spread)
        shape = (grid.ny + 2 * ybuf, grid.nx + 2 * xbuf)

        if len(particles) == 0:
            logger.warning("No particles with influence inside the grid; footprint is zero")

        n_layers = layers_held(self.config.n_workers, len(kernels), self.config.time_integrate)
        logger.info("Estimated footprint grid RAM allocation: %.1f MB",
                    estimate_grid_memory(grid, xbuf, ybuf, n_layers))

        cells = grid_particles(particles, grid, xbuf, ybuf)
        layers = accumulate(cells, kernels, shape, self.config.n_workers, progress_callback)

        if self.config.time_integrate:
            total = sum_layers(layers, shape) / n_trajectories
            foot = composite(total, grid, xbuf, ybuf, n_trajectories)
        else:
            times, stack = [], []
            for t, layer in layers:
                times.append(t)
                stack.append(layer / n_trajectories)
            stack = np.stack(stack) if stack else np.zeros((0,) + shape)
            foot = composite(stack, grid, xbuf, ybuf, n_trajectories, times=times)

        logger.debug("Footprint total influence %.6g over %d time steps",
                     float(foot.sum()), len(kernels))

        if output is not None:
            write_footprint(foot, output)
        return foot


def compute_footprint(
    ensemble,
    grid_spec: Union[GridSpec, tuple, dict],
    output: Optional[str] = None,
    config: Optional[FootprintConfig] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    progress_callback: Optional[Callable] = None
) -> xr.DataArray:
    """
    Calculate the influence footprint of a trajectory ensemble.

    Args:
        ensemble: Trajectory ensemble (DataFrame or mapping of columns) with
            trajectory_id, time, longitude, latitude and weight
        grid_spec: (xmin, xmax, xres, ymin, ymax, yres), mapping or GridSpec
        output: Optional filename (.nc, .npz or .png) to write the footprint to
        config: Footprint configuration
        seed: Bootstrap seed, overrides config.seed
        rng: Bootstrap random generator, overrides seed
        progress_callback: Optional callback function(time, occupied_cells)

    Returns:
        Footprint DataArray with lat/lon cell-center coordinates
    """
    config = config or FootprintConfig()
    if rng is None:
        rng = np.random.default_rng(config.seed if seed is None else seed)
    calculator = FootprintCalculator(grid_spec, config=config, rng=rng)
    return calculator.run(ensemble, output=output, progress_callback=progress_callback)
