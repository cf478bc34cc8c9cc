# simulation.py

import logging
import time

import matplotlib.pyplot as plt
import numpy as np

from area_division import AreaDivisionNode
from communication import FeedDispatcher
from config import GRID_SIZE, NUM_ROBOTS, load_config
from environment import Environment
from visualization import plot_partition, plot_region


class SimClock:
    """Manually advanced clock shared by every node of the simulation."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _broadcast(dispatchers, poses, clock):
    """Every node hears every other member's position."""
    for identity, dispatcher in dispatchers.items():
        dispatcher.post({'type': 'pose', 'pose': poses[identity], 'stamp': clock(), 'valid': True})
        others = [(rid, pose) for rid, pose in poses.items() if rid != identity]
        dispatcher.post({'type': 'swarm_position', 'positions': others})
        dispatcher.deliver_messages()


def _query(dispatchers):
    results = {}
    for identity, dispatcher in dispatchers.items():
        dispatcher.post({'type': 'get_area', 'reply': lambda res, i=identity: results.__setitem__(i, res)})
        dispatcher.deliver_messages()
    return results


def _summary(title, results):
    print(f"\n=== {title} ===")
    partitions = [r.partition for r in results.values() if r.ok]
    for identity, res in results.items():
        if not res.ok:
            print(f"Robot {identity}: FAILED ({res.error})")
            continue
        owned = int(np.sum(res.partition.region_mask(identity)))
        print(f"Robot {identity}: {owned} cells, status={res.status}")
    if partitions:
        p = partitions[0]
        consistent = all(np.array_equal(p.owners, q.owners) for q in partitions[1:])
        print(f"  Discrepancy: {p.discrepancy:.4f}  Converged: {p.converged}  Rounds: {p.iterations}")
        print(f"  Identical partition on every node: {consistent}")


def run_simulation(config_path=None, seed=7):
    start_time = time.time()
    config = load_config(config_path)
    clock = SimClock()

    # 1) Environment & swarm
    env = Environment(GRID_SIZE, seed=seed)
    poses = {f"cps_{i}": pose for i, pose in enumerate(env.spawn_poses(NUM_ROBOTS))}
    if not poses:
        print("Error: No free cells to place robots. Exiting.")
        return

    dispatchers = {}
    for identity in poses:
        node = AreaDivisionNode(config, clock=clock)
        dispatcher = FeedDispatcher(node)
        dispatcher.post({'type': 'uuid', 'value': identity})
        dispatcher.post({'type': 'map', 'map': env.gridmap})
        dispatchers[identity] = dispatcher

    _broadcast(dispatchers, poses, clock)
    t0 = time.time()
    initial = _query(dispatchers)
    divide_t = time.time() - t0
    _summary(f"Initial division among {len(poses)} robots", initial)

    # 2) Last robot goes silent until it times out
    silent = sorted(poses)[-1]
    remaining = {rid: pose for rid, pose in poses.items() if rid != silent}
    clock.advance(config.swarm_timeout + 1)
    _broadcast({rid: dispatchers[rid] for rid in remaining}, remaining, clock)
    after = _query({rid: dispatchers[rid] for rid in remaining})
    _summary(f"After {silent} timed out", after)

    # Plots: full partitions before/after and the first robot's final region
    first = sorted(remaining)[0]
    fig, axes = plt.subplots(1, 3, figsize=(24, 8))
    for ax, results, robots, title in (
        (axes[0], initial, poses, "Initial partition"),
        (axes[1], after, remaining, f"Partition after {silent} left"),
    ):
        res = next(iter(results.values()))
        if res.ok:
            cells = {rid: env.gridmap.world_to_grid(p) for rid, p in robots.items()}
            plot_partition(res.partition, env.gridmap, ax, robots=cells, title=title)
    if after[first].ok:
        plot_region(after[first].region, axes[2], title=f"Area assigned to {first}")
    plt.tight_layout()
    plt.savefig('area_division.png')
    plt.close(fig)

    end_time = time.time()
    print("\nPerformance Breakdown:")
    print(f"  Initial Division Time (all nodes): {divide_t:.2f}s")
    print(f"Total Simulation Time: {end_time - start_time:.2f}s")
    print(f"Total Free Cells: {len(env.free_cells())}")
    print(f"Robots Placed: {len(poses)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_simulation()
