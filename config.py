# config.py

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

from exceptions import ConfigError

logger = logging.getLogger("AreaDivision.Config")

# Swarm membership
SWARM_TIMEOUT = 5.0           # Seconds without a report before a member is pruned
LOOP_RATE = 1.5               # Hz of the control loop that drains the feed queue
VISUALIZE = False             # Publish this node's region after every division

# Partition optimizer
IMPORTANCE_WEIGHT = 1.0       # Exponent applied to the actual/target share ratio
MINIMUM_MARGIN = 0.01         # Per-round factor change is clamped to [1 - m, 1 + m]
CONVERGENCE_THRESHOLD = 1e-4  # Max allowed (max - min) / free cells
MAX_ITERATIONS = 30           # Fairness-correction rounds
STALL_ROUNDS = 5              # Non-improving rounds before giving up early

# Occupancy values (nav_msgs/OccupancyGrid convention)
FREE = 0
OCCUPIED = 100
UNKNOWN = -1

# Synthetic environment (simulation.py)
GRID_SIZE = 40                # Side length of the square grid
NUM_ROBOTS = 4                # Swarm members in the simulation
RESOLUTION = 0.5              # Meters per cell
OBSTACLE_THRESHOLD = 0.65     # Smoothed-noise level above which a cell is an obstacle
NOISE_SCALE = 2.5             # Gaussian smoothing sigma (cells) of the terrain noise

CONFIG_ENV = "AREA_DIVISION_CONFIG"


@dataclass(frozen=True)
class Parameters:
    """Partition optimizer settings, fixed for the lifetime of the process."""

    importance_weight: float = IMPORTANCE_WEIGHT
    minimum_margin: float = MINIMUM_MARGIN
    convergence_threshold: float = CONVERGENCE_THRESHOLD
    max_iterations: int = MAX_ITERATIONS
    stall_rounds: int = STALL_ROUNDS

    def __post_init__(self):
        if self.importance_weight < 0:
            raise ConfigError(f"importance_weight must be >= 0, got {self.importance_weight}")
        if not 0 < self.minimum_margin < 1:
            raise ConfigError(f"minimum_margin must be in (0, 1), got {self.minimum_margin}")
        if not 0 <= self.convergence_threshold <= 1:
            raise ConfigError(
                f"convergence_threshold must be in [0, 1], got {self.convergence_threshold}"
            )
        if int(self.max_iterations) != self.max_iterations or self.max_iterations <= 0:
            raise ConfigError(f"max_iterations must be a positive integer, got {self.max_iterations}")
        if int(self.stall_rounds) != self.stall_rounds or self.stall_rounds <= 0:
            raise ConfigError(f"stall_rounds must be a positive integer, got {self.stall_rounds}")


@dataclass(frozen=True)
class NodeConfig:
    """Startup configuration of one area division node."""

    swarm_timeout: float = SWARM_TIMEOUT
    loop_rate: float = LOOP_RATE
    visualize: bool = VISUALIZE
    parameters: Parameters = field(default_factory=Parameters)

    def __post_init__(self):
        if self.swarm_timeout <= 0:
            raise ConfigError(f"swarm_timeout must be > 0, got {self.swarm_timeout}")
        if self.loop_rate <= 0:
            raise ConfigError(f"loop_rate must be > 0, got {self.loop_rate}")


def _build(cls, raw, section):
    if not isinstance(raw, dict):
        raise ConfigError(f"'{section}' must be a mapping, not {type(raw).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")
    try:
        return cls(**raw)
    except TypeError as exc:
        raise ConfigError(f"Invalid '{section}' block: {exc}") from exc


def config_from_dict(data):
    """Build a NodeConfig from a parsed config dict (the ``area_division`` block)."""
    if data is None:
        return NodeConfig()
    raw = dict(_section(data))
    optimizer = raw.pop("optimizer", {}) or {}
    raw["parameters"] = _build(Parameters, optimizer, "area_division.optimizer")
    return _build(NodeConfig, raw, "area_division")


def _section(data):
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping (check YAML syntax)")
    block = data.get("area_division", {})
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise ConfigError("'area_division' must be a mapping, not a scalar")
    return block


def load_config(path=None):
    """
    Load the node configuration from a YAML file.

    Falls back to $AREA_DIVISION_CONFIG, then to the module defaults when no
    file is given. Any invalid value raises ConfigError, which is fatal at startup.
    """
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        logger.debug("No config file given, using defaults")
        return NodeConfig()
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc
    cfg = config_from_dict(data)
    logger.info(f"Loaded config from {path}: timeout={cfg.swarm_timeout}s, {cfg.parameters}")
    return cfg
