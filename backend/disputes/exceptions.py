# backend/disputes/exceptions.py
"""
Typed failures raised by the dispute engine.

Every error carries a stable ``code`` so whatever sits in front of the
engine (admin, API, task runner) can map it without parsing messages.
"""


class DisputeError(Exception):
    code = "dispute_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message or self.code


class NotFound(DisputeError):
    """A dispute, proposal, evidence item, arbitration or order id does not exist."""
    code = "not_found"


class Conflict(DisputeError):
    """The operation would break a uniqueness or write-once invariant."""
    code = "conflict"


class Forbidden(DisputeError):
    """The actor is not allowed to perform the operation on this dispute."""
    code = "forbidden"


class InvalidState(DisputeError):
    """The dispute (or order) is in a status that does not allow the operation."""
    code = "invalid_state"


class InvalidArgument(DisputeError):
    code = "invalid_argument"
