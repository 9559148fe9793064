"""
Kernel scatter-accumulation onto the halo-padded footprint grid.

Particle weights are first summed per occupied (time, cell), so the cost of
building a layer depends on the number of occupied cells rather than the
number of samples.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterator, Optional, Tuple

import numpy as np
import pandas as pd

from .grid import GridSpec
from .trajectory import PreprocessedEnsemble

logger = logging.getLogger(__name__)


def grid_particles(
    particles: PreprocessedEnsemble,
    grid: GridSpec,
    xbuf: int = 0,
    ybuf: int = 0
) -> pd.DataFrame:
    """
    Bin particle samples into cells of the halo-padded grid.

    Args:
        particles: Preprocessed particle samples
        grid: Footprint grid
        xbuf: Halo width in columns
        ybuf: Halo height in rows

    Returns:
        DataFrame with columns time, row, col, weight holding the summed
        weight of every occupied cell per time step
    """
    rows, cols = grid.cell_index(particles.longitude, particles.latitude, xbuf, ybuf)
    cells = pd.DataFrame({
        'time': particles.time,
        'row': rows,
        'col': cols,
        'weight': particles.weight,
    })
    cells = cells.groupby(['time', 'row', 'col'], sort=True, as_index=False)['weight'].sum()
    logger.debug("%d samples collapsed into %d occupied cells", len(particles), len(cells))
    return cells


def scatter_kernel(
    buffer: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    weights: np.ndarray,
    kernel: np.ndarray
):
    """
    Add a weighted kernel centered on each cell into buffer, in place.

    Kernel cells falling outside the buffer are dropped.

    Args:
        buffer: 2D accumulator (rows, cols)
        rows: Row index of each occupied cell
        cols: Column index of each occupied cell
        weights: Weight of each occupied cell
        kernel: Odd-sized kernel (ky, kx)
    """
    ky, kx = kernel.shape
    hy, hx = ky // 2, kx // 2
    ny, nx = buffer.shape

    for r, c, w in zip(rows, cols, weights):
        r0, c0 = r - hy, c - hx
        br0, br1 = max(r0, 0), min(r0 + ky, ny)
        bc0, bc1 = max(c0, 0), min(c0 + kx, nx)
        if br0 >= br1 or bc0 >= bc1:
            continue
        buffer[br0:br1, bc0:bc1] += w * kernel[br0 - r0:br1 - r0, bc0 - c0:bc1 - c0]


def accumulate(
    cells: pd.DataFrame,
    kernels: Dict[float, np.ndarray],
    shape: Tuple[int, int],
    n_workers: int = 1,
    progress_callback: Optional[Callable] = None
) -> Iterator[Tuple[float, np.ndarray]]:
    """
    Build the footprint layer of every time step.

    Each layer is a private zero-initialized buffer of the padded grid shape.
    Layers are yielded in the order of `kernels`, also when they are built
    concurrently, so any reduction over them is deterministic.

    Args:
        cells: Output of grid_particles
        kernels: Mapping of time value to kernel, in time order
        shape: Padded grid shape (rows, cols)
        n_workers: Number of threads building layers
        progress_callback: Optional callback function(time, occupied_cells)

    Yields:
        Tuples of (time, layer)
    """
    by_time = {t: group for t, group in cells.groupby('time', sort=False)}

    def build(t: float) -> np.ndarray:
        layer = np.zeros(shape)
        step = by_time.get(t)
        if step is None or step.empty:
            logger.debug("Time %.1f has no occupied cells", t)
            return layer
        scatter_kernel(
            layer,
            step['row'].to_numpy(),
            step['col'].to_numpy(),
            step['weight'].to_numpy(),
            kernels[t],
        )
        return layer

    def report(t: float):
        if progress_callback:
            step = by_time.get(t)
            progress_callback(t, 0 if step is None else len(step))

    times = list(kernels)
    if n_workers > 1 and len(times) > 1:
        # At most n_workers layers are in flight; the oldest is yielded before
        # the next time step is submitted
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            pending = deque()
            for t in times:
                if len(pending) == n_workers:
                    done_t, future = pending.popleft()
                    report(done_t)
                    yield done_t, future.result()
                pending.append((t, executor.submit(build, t)))
            while pending:
                done_t, future = pending.popleft()
                report(done_t)
                yield done_t, future.result()
    else:
        for t in times:
            layer = build(t)
            report(t)
            yield t, layer


def sum_layers(layers, shape: Tuple[int, int]) -> np.ndarray:
    """Elementwise sum of (time, layer) pairs in the order given."""
    total = np.zeros(shape)
    for _, layer in layers:
        total += layer
    return total


def estimate_grid_memory(grid: GridSpec, xbuf: int, ybuf: int, n_layers: int) -> float:
    """
    Estimated accumulator memory in megabytes.

    Includes a 20% allowance over the raw float64 buffers.
    """
    cells = (grid.nx + 2 * xbuf) * (grid.ny + 2 * ybuf)
    return cells * n_layers * 8 * 1.2 / 1e6


def layers_held(n_workers: int, n_times: int, time_integrate: bool = True) -> int:
    """
    Largest number of padded layers alive at once during accumulation.

    Integrating holds the running total, the layer being added and up to
    n_workers layers in flight. Keeping every layer holds all of them twice
    (raw and normalized) while they are stacked.
    """
    if time_integrate:
        return min(n_workers, max(n_times, 1)) + 2
    return 2 * n_times + n_workers
