# gridmap.py

import math
from dataclasses import dataclass

import numpy as np

from config import FREE, UNKNOWN
from exceptions import InvalidMapError, OutOfBoundsError


def _round_half_away(value):
    # C-style round(): 0.5 -> 1, -0.5 -> -1 (Python's round() would give 0)
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


@dataclass(frozen=True, eq=False)
class GridMap:
    """
    Shared occupancy grid, replaced wholesale whenever the map feed refreshes.
      - width, height: number of cells along x and y
      - resolution: meters per cell
      - origin: world (x, y) of cell (0, 0)
      - data: int8 array of shape (height, width); cell (x, y) is data[y, x].
        0 = free, 100 = occupied, -1 = unknown. Any other value blocks like an obstacle.
    """

    width: int
    height: int
    resolution: float
    origin: tuple
    data: np.ndarray

    def __post_init__(self):
        data = np.array(self.data, dtype=np.int8, copy=True)
        data.setflags(write=False)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "origin", (float(self.origin[0]), float(self.origin[1])))

    @classmethod
    def from_occupancy(cls, width, height, resolution, origin, data):
        """Build from a flat row-major cell list, as carried by nav_msgs/OccupancyGrid."""
        flat = np.asarray(data, dtype=np.int8)
        if flat.size != width * height:
            raise InvalidMapError(
                f"Map data has {flat.size} cells, expected {width}x{height}={width * height}"
            )
        return cls(width, height, resolution, origin, flat.reshape(height, width))

    @classmethod
    def empty(cls, width, height, resolution=1.0, origin=(0.0, 0.0), value=FREE):
        return cls(width, height, resolution, origin, np.full((height, width), value, dtype=np.int8))

    @property
    def shape(self):
        return (self.height, self.width)

    def validate(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidMapError(f"Map has zero dimensions: {self.width}x{self.height}")
        if not self.resolution > 0:
            raise InvalidMapError(f"Map resolution must be positive, got {self.resolution}")
        if self.data.shape != self.shape:
            raise InvalidMapError(
                f"Map data shape {self.data.shape} does not match {self.height}x{self.width}"
            )

    def in_bounds(self, cell):
        x, y = cell
        return 0 <= x < self.width and 0 <= y < self.height

    def world_to_grid(self, pose):
        """
        Convert a world (x, y) pose to an integer grid cell (x, y).
        Raises OutOfBoundsError instead of clamping when the pose lies outside the map.
        """
        if not self.resolution > 0:
            raise InvalidMapError(f"Map resolution must be positive, got {self.resolution}")
        cell = (
            _round_half_away((pose[0] - self.origin[0]) / self.resolution),
            _round_half_away((pose[1] - self.origin[1]) / self.resolution),
        )
        if not self.in_bounds(cell):
            raise OutOfBoundsError(
                f"Pose ({pose[0]:.2f}, {pose[1]:.2f}) maps to cell {cell} outside "
                f"{self.width}x{self.height} map",
                cell=cell,
            )
        return cell

    def grid_to_world(self, cell):
        return (
            self.origin[0] + cell[0] * self.resolution,
            self.origin[1] + cell[1] * self.resolution,
        )

    def classify(self, cell):
        """Return 'free', 'occupied' or 'unknown' for a cell."""
        value = int(self.data[cell[1], cell[0]])
        if value == FREE:
            return "free"
        if value == UNKNOWN:
            return "unknown"
        return "occupied"

    def free_mask(self):
        return self.data == FREE

    def blocked_mask(self):
        # Raw values other than 0 / -1 count as occupied
        return (self.data != FREE) & (self.data != UNKNOWN)

    def with_data(self, data):
        """Same metadata, different cells."""
        return GridMap(self.width, self.height, self.resolution, self.origin, data)

    def to_occupancy(self):
        """Flat row-major list, the inverse of from_occupancy."""
        return self.data.ravel().tolist()

    def __eq__(self, other):
        if not isinstance(other, GridMap):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and self.resolution == other.resolution
            and self.origin == other.origin
            and np.array_equal(self.data, other.data)
        )

    __hash__ = None
