"""Error taxonomy for trajectory generation and repair."""


class TrajgenError(Exception):
    """Base class for engine errors."""


class RoutingFailure(TrajgenError):
    """Routing provider rejected the request or returned a malformed route."""


class GenerationFailure(TrajgenError):
    """Trip could not be assembled (bad settings or degenerate route)."""


class PersistenceFailure(TrajgenError):
    """Store operation was rejected."""


class InsufficientInputFailure(TrajgenError):
    """Not enough master data to run (missing deployment, < 2 geofences)."""


class NotFoundError(TrajgenError):
    """Requested record does not exist."""
