# communication.py

import logging
import time
from collections import deque

from exceptions import AreaDivisionError
from gridmap import GridMap

logger = logging.getLogger("AreaDivision.Feeds")


class FeedDispatcher:
    """
    Single control loop in front of an AreaDivisionNode.
    Transports append message dicts to `incoming_messages`; `deliver_messages()`
    hands them to the node strictly in arrival order, one handler at a time:
      - 'uuid'           {'value': str}
      - 'pose'           {'pose': (x, y), 'stamp': float, 'valid': bool}
      - 'swarm_position' {'positions': [(identity, (x, y)), ...]}
      - 'map'            {'map': GridMap} or the raw occupancy fields
                         {'width', 'height', 'resolution', 'origin', 'data'}
      - 'get_area'       {'reply': callable(AreaResult)}
    """

    def __init__(self, node, sleep=time.sleep):
        self.node = node
        self.sleep = sleep
        self.incoming_messages = deque()

    def post(self, msg):
        self.incoming_messages.append(msg)

    def deliver_messages(self):
        """Process every queued message. Returns how many were handled."""
        handled = 0
        while self.incoming_messages:
            msg = self.incoming_messages.popleft()
            typ = msg.get('type')
            try:
                known = self._dispatch(typ, msg)
            except (AreaDivisionError, KeyError, TypeError, ValueError) as e:
                # A bad message is dropped; the rest of the queue still goes through
                logger.warning(f"Dropping malformed {typ!r} message: {e!r}")
                continue
            if not known:
                logger.warning(f"Dropping message of unknown type {typ!r}")
                continue
            handled += 1
        return handled

    def _dispatch(self, typ, msg):
        if typ == 'uuid':
            self.node.handle_uuid(msg['value'])

        elif typ == 'pose':
            self.node.handle_pose(msg['pose'], msg.get('stamp'), msg.get('valid', True))

        elif typ == 'swarm_position':
            self.node.handle_swarm(msg['positions'], msg.get('now'))

        elif typ == 'map':
            gridmap = msg.get('map')
            if gridmap is None:
                gridmap = GridMap.from_occupancy(
                    msg['width'], msg['height'], msg['resolution'], msg['origin'], msg['data']
                )
            self.node.handle_map(gridmap)

        elif typ == 'get_area':
            msg['reply'](self.node.get_area(msg.get('now')))

        else:
            return False
        return True

    def spin(self, cycles):
        """Run the control loop for `cycles` iterations at the configured loop rate."""
        period = 1.0 / self.node.config.loop_rate
        for _ in range(cycles):
            self.deliver_messages()
            self.sleep(period)
