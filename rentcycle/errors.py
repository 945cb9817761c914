"""Error taxonomy for the rent cycle engine.

Batch loops record a failed lease or obligation and keep going. Outside
the batches these errors propagate to the caller.
"""


class RentCycleError(Exception):
    """Base class for all engine errors."""


class ValidationError(RentCycleError):
    """Malformed lease, obligation or payment input, rejected before any write."""


class NotFound(RentCycleError):
    """Operation referenced a lease, obligation or notification that does not exist."""


class InvalidTransition(RentCycleError):
    """State machine rule violation, e.g. paying an obligation twice."""

    def __init__(self, message, current_status=None, requested_status=None):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class TransportError(RentCycleError):
    """Outbound message, e-mail or document delivery failed."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(RentCycleError):
    """Backing store unavailable or rejected the unit of work."""
