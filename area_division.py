# area_division.py
"""
One swarm member's area division node.

The node owns everything the division needs (own identity and pose, the swarm
registry, the latest grid map, the cached partition) and is driven by feed
handlers plus a synchronous `get_area()` query:

  handle_uuid            -> own identity, accepted once
  handle_pose            -> own position
  handle_swarm           -> positions of the other members; joins and timeouts
                            mark the reconfiguration trigger
  handle_map             -> shared occupancy grid, replaced wholesale
  get_area               -> this member's region, re-dividing first if needed

Handlers are expected to run one at a time on a single control loop
(see communication.FeedDispatcher), so the node holds no locks.
"""
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from allocator import Partition, PartitionEngine
from config import NodeConfig
from exceptions import AreaDivisionError, NotReadyError, OutOfBoundsError
from gridmap import GridMap
from region_assigner import get_region
from registry import ReconfigurationTrigger, SwarmRegistry

logger = logging.getLogger("AreaDivision.Node")


class Readiness(enum.Enum):
    AWAITING_IDENTITY = "awaiting_identity"
    AWAITING_POSITION = "awaiting_position"
    AWAITING_MAP = "awaiting_map"
    READY = "ready"


class SwarmPosition(NamedTuple):
    """Position report of another swarm member, in world coordinates."""

    identity: str
    pose: tuple


@dataclass
class AreaResult:
    """Outcome of an area query: status is 'ok', 'warning' or 'failed'."""

    status: str
    region: Optional[GridMap] = None
    partition: Optional[Partition] = None
    error: Optional[AreaDivisionError] = None
    warnings: list = field(default_factory=list)

    @property
    def ok(self):
        return self.status != "failed"


class AreaDivisionNode:
    def __init__(self, config=None, clock=time.time, publisher=None):
        self.config = config or NodeConfig()
        self.clock = clock
        self.publisher = publisher
        self.engine = PartitionEngine(self.config.parameters)
        self.trigger = ReconfigurationTrigger()
        self.registry = SwarmRegistry(self.trigger)

        self.uuid = None
        self.pose = None
        self.pose_stamp = None
        self.pose_valid = False
        self.swarm_valid = False
        self.gridmap = None
        self.partition = None
        self.state = Readiness.AWAITING_IDENTITY

    # --- Readiness ---
    def _advance(self):
        previous = self.state
        if self.state is Readiness.AWAITING_IDENTITY and self.uuid:
            self.state = Readiness.AWAITING_POSITION
        if self.state is Readiness.AWAITING_POSITION and self.pose_valid and self.swarm_valid:
            self.state = Readiness.AWAITING_MAP
        if self.state is Readiness.AWAITING_MAP and self.gridmap is not None:
            self.state = Readiness.READY
        if self.state is not previous:
            logger.info(f"Node {self.uuid or '?'}: {previous.value} -> {self.state.value}")

    @property
    def ready(self):
        return self.state is Readiness.READY

    # --- Feed handlers ---
    def handle_uuid(self, identity):
        if not identity:
            return
        if self.uuid is None:
            self.uuid = identity
            # Our own reports may have reached the registry before we knew our name
            self.registry.remove(identity)
            logger.info(f"Own identity is {identity}")
            self._advance()
        elif identity != self.uuid:
            logger.warning(f"Ignoring identity {identity}, already running as {self.uuid}")

    def handle_pose(self, pose, timestamp=None, valid=True):
        self.pose = (float(pose[0]), float(pose[1]))
        self.pose_stamp = self.clock() if timestamp is None else timestamp
        if valid:
            self.pose_valid = True
        self._advance()

    def handle_swarm(self, reports, now=None):
        """Register or refresh every reported member, then drop the silent ones."""
        now = self.clock() if now is None else now
        for identity, pose in reports:
            if identity == self.uuid:
                continue
            self.registry.register_or_update(identity, pose, now)
        self.registry.prune(now, self.config.swarm_timeout)
        self.swarm_valid = True
        self._advance()

    def handle_map(self, gridmap):
        self.gridmap = gridmap
        self._advance()

    # --- Division ---
    def robot_cells(self):
        """Grid cell of this node and of every known member that lies on the map."""
        self.gridmap.validate()
        cells = {self.uuid: self.gridmap.world_to_grid(self.pose)}
        for record in self.registry:
            try:
                cells[record.identity] = self.gridmap.world_to_grid(record.position)
            except OutOfBoundsError as exc:
                logger.warning(f"Skipping CPS {record.identity}: {exc}")
        return cells

    def divide(self):
        logger.debug(f"Dividing area ({self.trigger.reason or 'map changed'})...")
        self.partition = self.engine.divide(self.gridmap, self.robot_cells())
        self.trigger.clear()
        if self.config.visualize and self.publisher is not None:
            try:
                self.publisher(get_region(self.partition, self.gridmap, self.uuid))
            except OSError as e:
                logger.warning(f"Could not publish assigned region: {e}")
        return self.partition

    def _stale(self):
        return (
            self.trigger.dirty
            or self.partition is None
            or self.partition.shape != self.gridmap.shape
        )

    def get_area(self, now=None):
        """
        Return this node's assigned region. Re-divides first when membership changed
        since the last division; otherwise the cached partition is reused.
        """
        if not self.ready:
            error = NotReadyError(f"Node not ready: {self.state.value}", state=self.state)
            return AreaResult("failed", error=error)

        now = self.clock() if now is None else now
        self.registry.prune(now, self.config.swarm_timeout)
        try:
            if self._stale():
                self.divide()
            region = get_region(self.partition, self.gridmap, self.uuid)
        except AreaDivisionError as exc:
            logger.warning(f"Area query failed: {exc}")
            return AreaResult("failed", error=exc)

        warnings = list(self.partition.warnings)
        return AreaResult(
            "warning" if warnings else "ok",
            region=region,
            partition=self.partition,
            warnings=warnings,
        )
