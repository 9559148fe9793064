"""
Output module for footprint grids.

Crops the halo-padded accumulator to the requested extent, attaches
longitude/latitude coordinates and writes the result as NetCDF, a NumPy
archive, or a PNG image with a PGW world file for GIS software.
"""

import logging
import os
from typing import Optional, Sequence

import numpy as np
import xarray as xr

from .errors import SerializationError
from .grid import GridSpec

logger = logging.getLogger(__name__)

CRS = "+proj=longlat +ellps=WGS84"


def composite(
    total: np.ndarray,
    grid: GridSpec,
    xbuf: int,
    ybuf: int,
    n_trajectories: int,
    times: Optional[Sequence[float]] = None
) -> xr.DataArray:
    """
    Crop a padded footprint to the grid extent and attach coordinates.

    Args:
        total: Padded footprint, shape (rows, cols) or (time, rows, cols),
            already normalized by trajectory count
        grid: Footprint grid
        xbuf: Halo width in columns
        ybuf: Halo height in rows
        n_trajectories: Number of trajectories in the ensemble
        times: Time coordinate when total has a time axis

    Returns:
        DataArray named 'foot' with lat/lon cell-center coordinates
    """
    rows = slice(ybuf, ybuf + grid.ny)
    cols = slice(xbuf, xbuf + grid.nx)
    coords = {'lat': grid.lat_centers, 'lon': grid.lon_centers}

    if times is None:
        values = total[rows, cols]
        dims = ('lat', 'lon')
    else:
        values = total[:, rows, cols]
        dims = ('time', 'lat', 'lon')
        coords['time'] = np.asarray(times, dtype=float)

    foot = xr.DataArray(
        np.array(values, copy=True),
        dims=dims,
        coords=coords,
        name='foot',
        attrs={
            'crs': CRS,
            'xmin': grid.xmin,
            'xmax': grid.xmax,
            'xres': grid.xres,
            'ymin': grid.ymin,
            'ymax': grid.ymax,
            'yres': grid.yres,
            'n_trajectories': int(n_trajectories),
        },
    )
    foot['lat'].attrs['units'] = 'degrees_north'
    foot['lon'].attrs['units'] = 'degrees_east'
    return foot


class FootprintOutput:
    """
    Write footprint grids to disk.

    The file format follows the target extension:
    .nc (NetCDF), .npz (NumPy archive) or .png (image + PGW world file).
    """

    def __init__(self, foot: xr.DataArray):
        """
        Initialize footprint output.

        Args:
            foot: Footprint grid produced by composite()
        """
        self.foot = foot
        self.xres = float(foot.attrs['xres'])
        self.yres = float(foot.attrs['yres'])
        self.min_lon = float(foot['lon'].values[0]) - self.xres / 2
        self.max_lon = float(foot['lon'].values[-1]) + self.xres / 2
        self.min_lat = float(foot['lat'].values[0]) - self.yres / 2
        self.max_lat = float(foot['lat'].values[-1]) + self.yres / 2

    @property
    def grid(self) -> np.ndarray:
        """2D footprint values, summed over time when layered."""
        if 'time' in self.foot.dims:
            return self.foot.sum('time').values
        return self.foot.values

    def save(self, path: str) -> str:
        """
        Save the footprint, choosing the format from the file extension.

        Args:
            path: Output filename

        Returns:
            The path written
        """
        ext = os.path.splitext(str(path))[1].lower()
        writers = {
            '.nc': self._save_netcdf,
            '.npz': self._save_npz,
            '.png': self.save_raster,
        }
        if ext not in writers:
            raise SerializationError(path, f"unsupported file extension '{ext}'")

        try:
            writers[ext](str(path))
        except SerializationError:
            raise
        except (OSError, ValueError, RuntimeError, ImportError) as e:
            raise SerializationError(path, str(e)) from e

        logger.info("Wrote footprint to %s", path)
        return str(path)

    def _save_netcdf(self, path: str):
        self.foot.to_netcdf(path)

    def _save_npz(self, path: str):
        lon = self.foot['lon'].values
        lat = self.foot['lat'].values
        arrays = {
            'foot': self.foot.values,
            'lon': lon,
            'lat': lat,
            'lon_edges': np.append(lon - self.xres / 2, lon[-1] + self.xres / 2),
            'lat_edges': np.append(lat - self.yres / 2, lat[-1] + self.yres / 2),
        }
        if 'time' in self.foot.dims:
            arrays['time'] = self.foot['time'].values
        np.savez(path, **arrays)

    def save_raster(self, filename: str, colormap: str = "hot"):
        """
        Save footprint as PNG with PGW world file.

        Args:
            filename: Output filename (.png)
            colormap: Matplotlib colormap name
        """
        from matplotlib import image as mpimg

        # One pixel per cell, north up
        grid = np.flipud(self.grid)
        positive = grid[grid > 0]
        vmin, vmax = 0.0, (positive.max() if positive.size else 1.0)

        if positive.size and positive.max() / positive.min() > 100:
            # Use log scale
            grid = np.log10(np.where(grid > 0, grid, positive.min()))
            vmin, vmax = np.log10(positive.min()), np.log10(positive.max())

        mpimg.imsave(filename, grid, cmap=colormap, vmin=vmin, vmax=vmax, format='png')

        base = os.path.splitext(filename)[0]
        self._save_world_file(base + ".pgw")

    def _save_world_file(self, filename: str):
        """
        Save PGW world file for georeferencing.

        The world file format has 6 lines:
        1. x-scale (pixel size in x direction)
        2. rotation about y-axis (usually 0)
        3. rotation about x-axis (usually 0)
        4. y-scale (negative pixel size in y direction)
        5. x-coordinate of upper-left pixel center
        6. y-coordinate of upper-left pixel center
        """
        with open(filename, 'w') as f:
            f.write(f"{self.xres!r}\n")
            f.write("0\n")
            f.write("0\n")
            # Negative because y increases downward in image
            f.write(f"{-self.yres!r}\n")
            f.write(f"{self.min_lon + self.xres / 2!r}\n")
            f.write(f"{self.max_lat - self.yres / 2!r}\n")

    def get_grid_statistics(self) -> dict:
        """
        Get statistics about the footprint grid.

        Returns:
            Dictionary with statistics
        """
        grid = self.grid
        return {
            "total_influence": float(np.sum(grid)),
            "max_influence": float(np.max(grid)),
            "affected_cells": int(np.sum(grid > 0)),
            "total_cells": int(grid.size),
        }


def write_footprint(foot: xr.DataArray, path: str) -> str:
    """Write a footprint grid to path; see FootprintOutput.save."""
    return FootprintOutput(foot).save(path)
