"""Shared fixtures for the area division tests."""

import numpy as np
import pytest

from gridmap import GridMap


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def open_map():
    """10x10 all-free grid, resolution 1, origin (0, 0)."""
    return GridMap.empty(10, 10)


@pytest.fixture
def ring_map():
    """
    10x10 grid with a closed obstacle ring on x, y in [2, 7]; the 4x4 pocket
    inside (x, y in [3, 6]) is cut off from the free band outside.
    """
    data = np.zeros((10, 10), dtype=np.int8)
    data[2:8, 2] = 100
    data[2:8, 7] = 100
    data[2, 2:8] = 100
    data[7, 2:8] = 100
    return GridMap(10, 10, 1.0, (0.0, 0.0), data)
