# region_assigner.py

import numpy as np

from config import UNKNOWN
from exceptions import InvalidMapError


def region_mask(partition, identity):
    """Boolean (height, width) mask of the cells owned by `identity`."""
    return partition.region_mask(identity)


def get_region(partition, gridmap, identity):
    """
    Cut the region of one member out of the full map.
    The result keeps the map's size, resolution and origin so full-map coordinate
    math still works downstream. Owned cells keep their original value, every
    other cell becomes unknown.
    """
    if partition.shape != gridmap.shape:
        raise InvalidMapError(
            f"Partition shape {partition.shape} does not match map shape {gridmap.shape}"
        )
    data = np.where(region_mask(partition, identity), gridmap.data, UNKNOWN)
    return gridmap.with_data(data)
