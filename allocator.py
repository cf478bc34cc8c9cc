# allocator.py
"""
Area division of a shared occupancy grid among swarm members:
  - reachability: free cells 4-connected to at least one member
  - weighted nearest-member assignment, iterated with a fairness correction
    that rescales each member's distance factor until the cell counts balance
  - connectivity repair so that every member owns one 4-connected region
    containing its own cell
  - boundary transfer of single cells between adjacent regions, which splits
    the equidistant plateaus that weighting can only move as a whole

Cells are addressed as (x, y); arrays are indexed [y, x] like the grid map.
"""
import logging
from dataclasses import dataclass, field

import numpy as np
from scipy import ndimage

from config import Parameters
from exceptions import InvalidMapError, NoRobotsError, PartialFragmentationWarning

logger = logging.getLogger("AreaDivision.Engine")

UNASSIGNED = -1
FOUR_CONNECTED = ndimage.generate_binary_structure(2, 1)


@dataclass(eq=False)
class Partition:
    """
    Result of one division run.
      - identities: member identities in lexical order
      - owners: (height, width) int32 array, index into `identities` or UNASSIGNED
      - counts: identity -> number of owned cells
      - discrepancy: (max - min) / reachable free cells
      - converged: discrepancy within the configured threshold
      - fragmented: identities whose region could not be made a single component
    """

    identities: tuple
    owners: np.ndarray
    counts: dict
    discrepancy: float
    converged: bool
    iterations: int
    fragmented: tuple = ()
    warnings: list = field(default_factory=list)

    @property
    def shape(self):
        return self.owners.shape

    @property
    def total_cells(self):
        return sum(self.counts.values())

    def owner_of(self, cell):
        idx = int(self.owners[cell[1], cell[0]])
        return None if idx == UNASSIGNED else self.identities[idx]

    def region_mask(self, identity):
        if identity not in self.identities:
            return np.zeros(self.shape, dtype=bool)
        return self.owners == self.identities.index(identity)

    def to_dict(self):
        """Cell -> identity for every assigned cell."""
        ys, xs = np.nonzero(self.owners != UNASSIGNED)
        return {
            (int(x), int(y)): self.identities[self.owners[y, x]]
            for y, x in zip(ys, xs)
        }


def reachable_cells(free, cells):
    """Free cells that share a 4-connected component with at least one robot cell."""
    labels, _ = ndimage.label(free, structure=FOUR_CONNECTED)
    robot_labels = np.unique(labels[cells[:, 1], cells[:, 0]])
    return np.isin(labels, robot_labels[robot_labels > 0])


def distance_maps(shape, cells):
    """
    Euclidean distance from every cell to every robot, shape (robots, height, width).
    Squared distances are integers, so equal distances compare exactly equal.
    """
    ys, xs = np.indices(shape)
    dx = xs[None, :, :] - cells[:, 0, None, None]
    dy = ys[None, :, :] - cells[:, 1, None, None]
    return np.sqrt((dx * dx + dy * dy).astype(float))


def assign_cells(distances, factors, reachable, seeds):
    """
    Give every reachable cell to the robot with the smallest scaled distance.
    np.argmin returns the first minimum, so ties go to the lowest identity.
    """
    owners = np.argmin(distances * factors[:, None, None], axis=0).astype(np.int32)
    owners[~reachable] = UNASSIGNED
    pinned = seeds != UNASSIGNED
    owners[pinned] = seeds[pinned]
    return owners


def _seed_owners(shape, cells):
    # Each robot owns its own cell; on shared cells the lowest identity is written last
    seeds = np.full(shape, UNASSIGNED, dtype=np.int32)
    for idx in range(len(cells) - 1, -1, -1):
        x, y = cells[idx]
        seeds[y, x] = idx
    return seeds


def _counts(owners, reachable, num_robots):
    return np.bincount(owners[reachable], minlength=num_robots)


def _discrepancy(counts, total):
    if total == 0:
        return 0.0
    return float(counts.max() - counts.min()) / total


def _kept_components(owners, cells):
    """For each robot, the component of its cells that contains its own cell."""
    kept = np.full(owners.shape, UNASSIGNED, dtype=np.int32)
    for idx, (x, y) in enumerate(cells):
        if owners[y, x] != idx:
            continue
        labels, _ = ndimage.label(owners == idx, structure=FOUR_CONNECTED)
        kept[labels == labels[y, x]] = idx
    return kept


def repair_connectivity(owners, distances, cells):
    """
    Hand stray cells (owned, but cut off from the owner's own cell) to the nearest
    robot whose kept component touches them, round after round, until nothing is
    stray or a round moves nothing.
    Returns the repaired owners and the indices of robots still owning stray cells.
    """
    owners = owners.copy()
    rounds = 0
    while True:
        kept = _kept_components(owners, cells)
        stray = (owners != UNASSIGNED) & (kept == UNASSIGNED)
        if not stray.any():
            logger.debug(f"Connectivity repaired in {rounds} rounds")
            return owners, ()

        best_dist = np.full(owners.shape, np.inf)
        best_owner = np.full(owners.shape, UNASSIGNED, dtype=np.int32)
        for idx in range(len(cells)):
            region = kept == idx
            if not region.any():
                continue
            touching = ndimage.binary_dilation(region, structure=FOUR_CONNECTED) & stray
            dist = np.where(touching, distances[idx], np.inf)
            closer = dist < best_dist
            best_dist[closer] = dist[closer]
            best_owner[closer] = idx

        moved = best_owner != UNASSIGNED
        if not moved.any():
            fragmented = tuple(int(i) for i in np.unique(owners[stray]))
            return owners, fragmented
        owners[moved] = best_owner[moved]
        rounds += 1


def _stays_connected(region, y, x):
    rest = region.copy()
    rest[y, x] = False
    _, n = ndimage.label(rest, structure=FOUR_CONNECTED)
    return n == 1


def _next_transfer(owners, distances, cells, counts, pinned):
    """
    Pick one (cell, recipient) move: the most-loaded robot gives a boundary cell to
    the least-loaded adjacent robot holding at least two cells fewer. Cells the
    recipient is nearly as close to go first, then row-major order.
    """
    kept = _kept_components(owners, cells)
    regions = [kept == idx for idx in range(len(cells))]
    for donor in np.argsort(-counts, kind="stable"):
        if not regions[donor].any():
            continue
        for recipient in np.argsort(counts, kind="stable"):
            if counts[recipient] >= counts[donor] - 1:
                break
            if not regions[recipient].any():
                continue
            border = regions[donor] & ~pinned & ndimage.binary_dilation(
                regions[recipient], structure=FOUR_CONNECTED
            )
            ys, xs = np.nonzero(border)
            if not len(ys):
                continue
            cost = distances[recipient][ys, xs] - distances[donor][ys, xs]
            for k in np.lexsort((xs, ys, cost)):
                if _stays_connected(regions[donor], ys[k], xs[k]):
                    return (ys[k], xs[k]), int(recipient)
    return None


def transfer_boundary_cells(owners, distances, cells, reachable, tolerance=0.0):
    """
    Move single boundary cells from over-served robots to adjacent under-served ones
    until the counts differ by at most `tolerance` cells or no move keeps the
    donor's region connected. A robot's own cell never moves.
    Weighted assignment shifts whole equidistant plateaus at once; this splits them.
    """
    owners = owners.copy()
    num_robots = len(cells)
    pinned = _seed_owners(owners.shape, cells) != UNASSIGNED
    moves = 0
    while True:
        counts = _counts(owners, reachable, num_robots)
        if counts.max() - counts.min() <= tolerance:
            break
        move = _next_transfer(owners, distances, cells, counts, pinned)
        if move is None:
            break
        (y, x), recipient = move
        owners[y, x] = recipient
        moves += 1
    if moves:
        logger.debug(f"Moved {moves} boundary cells between regions")
    return owners


class PartitionEngine:
    """
    Divides the reachable free cells of a grid map among robots so that each robot
    gets a single connected region of roughly equal size. Every call recomputes the
    partition from scratch; identical inputs give an identical partition.
    """

    def __init__(self, parameters=None):
        self.parameters = parameters or Parameters()

    def divide(self, gridmap, robots):
        """
        robots: mapping (or pairs) of identity -> grid cell (x, y).
        Raises NoRobotsError / InvalidMapError; never raises for non-convergence.
        """
        robots = dict(robots)
        if not robots:
            raise NoRobotsError("No robots to divide the area among")
        if gridmap is None:
            raise InvalidMapError("No grid map available")
        gridmap.validate()

        identities = tuple(sorted(robots))
        for identity in identities:
            if not gridmap.in_bounds(robots[identity]):
                raise InvalidMapError(
                    f"Robot {identity} at cell {tuple(robots[identity])} is outside the map"
                )
        cells = np.array([robots[i] for i in identities], dtype=np.int64).reshape(-1, 2)

        # A robot always stands on a free cell, whatever the map says
        free = gridmap.free_mask()
        free[cells[:, 1], cells[:, 0]] = True
        reachable = reachable_cells(free, cells)
        total = int(reachable.sum())

        distances = distance_maps(gridmap.shape, cells)
        seeds = _seed_owners(gridmap.shape, cells)
        owners, counts, stray_owners, iterations, converged = self._balance(
            distances, reachable, seeds, cells, total
        )
        discrepancy = _discrepancy(counts, total)

        partition = Partition(
            identities=identities,
            owners=owners,
            counts={identity: int(c) for identity, c in zip(identities, counts)},
            discrepancy=discrepancy,
            converged=converged,
            iterations=iterations,
            fragmented=tuple(identities[i] for i in stray_owners),
        )
        if partition.fragmented:
            warning = PartialFragmentationWarning(partition.fragmented)
            partition.warnings.append(warning)
            logger.warning(str(warning))

        logger.info(
            f"Divided {total} cells among {len(identities)} CPSs: rounds={iterations}, "
            f"discrepancy={discrepancy:.4f}, converged={converged}"
        )
        return partition

    def _balance(self, distances, reachable, seeds, cells, total):
        """
        Fairness correction loop. Every round assigns, repairs connectivity, polishes
        the boundaries cell by cell and measures the counts of the result. The factors
        follow the repaired counts, before any transfer. The best round seen is kept, so
        the result is never worse than any earlier round; after `stall_rounds`
        rounds without improvement the loop gives up.
        """
        params = self.parameters
        num_robots = len(cells)
        target = total / num_robots
        factors = np.ones(num_robots)

        best, best_disc = None, np.inf
        stall = 0
        iteration = 0
        for iteration in range(1, params.max_iterations + 1):
            owners = assign_cells(distances, factors, reachable, seeds)
            owners, stray_owners = repair_connectivity(owners, distances, cells)
            repaired = _counts(owners, reachable, num_robots)
            owners = transfer_boundary_cells(
                owners, distances, cells, reachable, params.convergence_threshold * total
            )
            counts = _counts(owners, reachable, num_robots)
            disc = _discrepancy(counts, total)
            logger.debug(f"Round {iteration}: counts={counts.tolist()}, discrepancy={disc:.4f}")

            if disc < best_disc:
                best, best_disc = (owners, counts, stray_owners), disc
                stall = 0
            else:
                stall += 1

            if disc <= params.convergence_threshold:
                return owners, counts, stray_owners, iteration, True
            if stall >= params.stall_rounds:
                logger.debug(f"No improvement for {stall} rounds, stopping at round {iteration}")
                break

            # Over-served robots look farther away next round, under-served ones nearer
            scale = (repaired / target) ** params.importance_weight
            factors = factors * np.clip(scale, 1 - params.minimum_margin, 1 + params.minimum_margin)

        return best + (iteration, False)
