"""
Example script demonstrating the Python API.
"""

import logging

import numpy as np
import pandas as pd

from stilt_footprint import FootprintCalculator, FootprintConfig, FootprintOutput


def make_trajectories(n_trajectories=500, seed=0):
    """Synthetic backward trajectories released from a receptor near Salt Lake City."""
    rng = np.random.default_rng(seed)
    times = -np.arange(0.0, 121.0, 2.0)
    frames = []
    for i in range(1, n_trajectories + 1):
        u = rng.normal(0.004, 0.002)
        v = rng.normal(-0.002, 0.002)
        frames.append(pd.DataFrame({
            'trajectory_id': i,
            'time': times,
            'longitude': -111.85 + u * times + np.cumsum(rng.normal(0, 0.004, len(times))),
            'latitude': 40.77 + v * times + np.cumsum(rng.normal(0, 0.004, len(times))),
            'weight': rng.uniform(0.0, 0.05, len(times)) * np.exp(times / 60),
        }))
    return pd.concat(frames, ignore_index=True)


def main():
    """Run example footprint calculation."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    print("Generating trajectories...")
    particles = make_trajectories()

    print("Calculating footprint...")
    calculator = FootprintCalculator(
        grid=(-113.0, -111.0, 0.01, 40.0, 42.0, 0.01),
        config=FootprintConfig(n_workers=4, seed=42),
    )

    def progress(time, cells):
        if time % 10 == 0:
            print(f"  Time: {time:.1f} min, occupied cells: {cells}")

    foot = calculator.run(particles, output="example_footprint.nc", progress_callback=progress)

    print("\nGrid statistics:")
    output = FootprintOutput(foot)
    for key, value in output.get_grid_statistics().items():
        print(f"  {key}: {value}")

    output.save("example_footprint.png")
    print("\nDone! Check example_footprint.nc, example_footprint.png and example_footprint.pgw")


if __name__ == "__main__":
    main()
