"""Error taxonomy shared by the assignment and routing services."""


class ShuttleOpsError(Exception):
    """Base class for errors surfaced to API callers."""


class ValidationError(ShuttleOpsError):
    """A required endpoint or employee reference is missing or unresolvable."""


class NotFoundError(ShuttleOpsError):
    """A referenced stop, axis, employee or trip does not exist."""


class UpstreamServiceError(ShuttleOpsError):
    """Routing or geocoding service failed (network, timeout, status, payload)."""


class PersistenceError(ShuttleOpsError):
    """A write to the data store could not be committed."""


class RecoverableLookupError(ShuttleOpsError):
    """A derived lookup failed; the caller is expected to apply a default."""
