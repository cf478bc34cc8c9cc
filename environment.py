# environment.py

import numpy as np
from scipy import ndimage

from config import FREE, GRID_SIZE, NOISE_SCALE, OBSTACLE_THRESHOLD, OCCUPIED, RESOLUTION, UNKNOWN
from gridmap import GridMap


class Environment:
    """
    Generates a smoothed-noise terrain as an occupancy grid, fills free pockets that
    are enclosed by obstacles, and optionally hides part of the map as unknown.
    Used to exercise the area division on maps that look like explored terrain.
    """

    def __init__(self, grid_size=GRID_SIZE, resolution=RESOLUTION, origin=(0.0, 0.0),
                 obstacle_threshold=OBSTACLE_THRESHOLD, unknown_fraction=0.0, seed=None):
        self.grid_size = grid_size
        self.resolution = resolution
        self.origin = origin
        self.obstacle_threshold = obstacle_threshold
        self.rng = np.random.default_rng(seed)

        self.terrain_map = self._generate_terrain()
        self._fill_closed_loops()
        if unknown_fraction > 0:
            self._hide_cells(unknown_fraction)
        self.gridmap = GridMap(grid_size, grid_size, resolution, origin, self.terrain_map)

    def _generate_terrain(self):
        """
        Smooth uniform noise into blobs, normalize to [0,1], then threshold at
        obstacle_threshold. Cells are 0 (free) or 100 (occupied).
        """
        world = ndimage.gaussian_filter(self.rng.random((self.grid_size, self.grid_size)), NOISE_SCALE)
        span = world.max() - world.min()
        world = (world - world.min()) / span if span > 0 else np.zeros_like(world)
        terrain = np.where(world > self.obstacle_threshold, OCCUPIED, FREE).astype(np.int8)
        terrain[0, 0] = FREE  # Ensure the corner is free
        return terrain

    def _fill_closed_loops(self):
        """
        Any free component that does not touch the map border is enclosed → obstacle.
        """
        labels, _ = ndimage.label(self.terrain_map == FREE)
        border = np.concatenate([labels[0, :], labels[-1, :], labels[:, 0], labels[:, -1]])
        outside = np.isin(labels, border[border > 0])
        self.terrain_map[(self.terrain_map == FREE) & ~outside] = OCCUPIED

    def _hide_cells(self, fraction):
        mask = self.rng.random(self.terrain_map.shape) < fraction
        self.terrain_map[mask] = UNKNOWN

    def free_cells(self):
        """All free cells as (x, y)."""
        ys, xs = np.nonzero(self.terrain_map == FREE)
        return [(int(x), int(y)) for x, y in zip(xs, ys)]

    def spawn_poses(self, count):
        """World poses of `count` distinct free cells."""
        free = self.free_cells()
        count = min(count, len(free))
        chosen = self.rng.choice(len(free), size=count, replace=False)
        return [self.gridmap.grid_to_world(free[i]) for i in sorted(chosen)]
