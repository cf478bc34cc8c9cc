"""Exception hierarchy for swarm area division."""


class AreaDivisionError(Exception):
    """Base exception for all area division errors."""


class ConfigError(AreaDivisionError):
    """Invalid startup configuration. Fatal."""


class InvalidMapError(AreaDivisionError):
    """Grid map is missing, malformed, or does not match the partition."""


class OutOfBoundsError(InvalidMapError):
    """A world coordinate falls outside the grid map."""

    def __init__(self, message, *, cell=None):
        self.cell = cell
        super().__init__(message)


class NoRobotsError(AreaDivisionError):
    """No swarm member is available to divide the area among."""


class NotReadyError(AreaDivisionError):
    """The node has not yet received identity, position and map."""

    def __init__(self, message, *, state=None):
        self.state = state
        super().__init__(message)


class PartialFragmentationWarning(UserWarning):
    """Connectivity repair could not merge every region into one component."""

    def __init__(self, identities):
        self.identities = tuple(identities)
        super().__init__(f"Fragmented regions remain for: {', '.join(self.identities)}")
