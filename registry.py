# registry.py

import logging
from dataclasses import dataclass

logger = logging.getLogger("AreaDivision.Registry")


class ReconfigurationTrigger:
    """
    Dirty bit that forces a new area division before the next query is answered.
    Starts dirty because no partition exists yet. Set by membership changes,
    cleared once a division run has completed.
    """

    def __init__(self, dirty=True):
        self._dirty = dirty
        self.reason = "startup" if dirty else None

    @property
    def dirty(self):
        return self._dirty

    def mark(self, reason):
        if not self._dirty:
            logger.debug(f"Reconfiguration required: {reason}")
        self._dirty = True
        self.reason = reason

    def clear(self):
        self._dirty = False
        self.reason = None

    def __bool__(self):
        return self._dirty


@dataclass
class RobotRecord:
    """A swarm member: opaque identity, last world position, last report time."""

    identity: str
    position: tuple
    timestamp: float
    valid: bool = True


class SwarmRegistry:
    """
    Known swarm members keyed by identity. Iteration is always in lexical order of
    identity so that tie-breaking downstream is reproducible.
    """

    def __init__(self, trigger=None):
        self.trigger = trigger if trigger is not None else ReconfigurationTrigger()
        self._records = {}

    def register_or_update(self, identity, position, timestamp):
        """
        Insert a new member (membership change) or refresh an existing one.
        Returns True when the member was new.
        """
        record = self._records.get(identity)
        if record is None:
            self._records[identity] = RobotRecord(identity, tuple(position), timestamp)
            logger.info(f"New CPS {identity}")
            self.trigger.mark(f"join {identity}")
            return True
        record.position = tuple(position)
        record.timestamp = timestamp
        return False

    def prune(self, now, timeout):
        """Remove every member whose last report is older than `timeout` seconds."""
        stale = sorted(rid for rid, r in self._records.items() if r.timestamp + timeout < now)
        for rid in stale:
            record = self._records.pop(rid)
            logger.info(f"Remove CPS {rid}, last seen {now - record.timestamp:.1f}s ago")
            self.trigger.mark(f"timeout {rid}")
        return stale

    def remove(self, identity):
        if self._records.pop(identity, None) is None:
            return False
        logger.info(f"Remove CPS {identity}")
        self.trigger.mark(f"leave {identity}")
        return True

    def get(self, identity):
        return self._records.get(identity)

    def identities(self):
        return sorted(self._records)

    def records(self):
        return [self._records[rid] for rid in sorted(self._records)]

    def __iter__(self):
        return iter(self.records())

    def __len__(self):
        return len(self._records)

    def __contains__(self, identity):
        return identity in self._records
