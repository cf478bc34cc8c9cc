# visualization.py

import logging
import os

import matplotlib.pyplot as plt
import numpy as np

from allocator import UNASSIGNED
from config import FREE, UNKNOWN

logger = logging.getLogger("AreaDivision.Visualization")


def plot_partition(partition, gridmap, ax, robots=None, title=None):
    """
    Draw every region in its own color over the map: obstacles=black, unknown=gray,
    unassigned free cells=white. `robots` maps identity -> (x, y) cell.
    """
    blocked = (gridmap.data != FREE) & (gridmap.data != UNKNOWN)
    ax.imshow(np.where(blocked, 0.0, np.where(gridmap.data == UNKNOWN, 0.6, 1.0)),
              cmap='gray', vmin=0, vmax=1, origin='lower')
    owners = np.ma.masked_equal(partition.owners, UNASSIGNED)
    ax.imshow(owners, cmap='tab20', vmin=0, vmax=max(len(partition.identities) - 1, 1),
              alpha=0.6, origin='lower', interpolation='nearest')
    for identity, (x, y) in (robots or {}).items():
        ax.plot(x, y, 'ko')
        ax.text(x, y, f" {identity} ({partition.counts.get(identity, 0)})", color='black')
    ax.set_title(title or f"Partition (discrepancy={partition.discrepancy:.3f}, "
                          f"converged={partition.converged})")
    return ax


def plot_region(region, ax, title=None):
    """Draw one member's region: owned free cells white, foreign/unknown gray, obstacles black."""
    img = np.where(region.data == UNKNOWN, 0.6, np.where(region.data == FREE, 1.0, 0.0))
    ax.imshow(img, cmap='gray', vmin=0, vmax=1, origin='lower')
    ax.set_title(title or "Assigned area")
    return ax


def save_partition_plot(partition, gridmap, path, robots=None, title=None):
    fig, ax = plt.subplots(figsize=(8, 8))
    plot_partition(partition, gridmap, ax, robots=robots, title=title)
    fig.savefig(path)
    plt.close(fig)
    return path


class RegionPlotSink:
    """
    Visualization sink for AreaDivisionNode: every published region is written to
    `<directory>/<prefix>_<n>.png`.
    """

    def __init__(self, directory, prefix='assigned_map'):
        self.directory = directory
        self.prefix = prefix
        self.published = []
        os.makedirs(directory, exist_ok=True)

    def __call__(self, region):
        path = os.path.join(self.directory, f"{self.prefix}_{len(self.published):04d}.png")
        fig, ax = plt.subplots(figsize=(6, 6))
        try:
            plot_region(region, ax)
            fig.savefig(path)
        finally:
            plt.close(fig)
        self.published.append(path)
        logger.debug(f"Published assigned area to {path}")
        return path
