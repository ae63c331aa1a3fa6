"""
Domain exceptions raised by the match engine services.

All derive from ValueError so callers that only care about "the request was
rejected" can keep catching ValueError; routes map the subclasses to HTTP
status codes.
"""


class ValidationError(ValueError):
    """Raised when input is malformed (scores, rating values, list sizes)."""


class NotFoundError(ValueError):
    """Raised when a match, request, team or player does not exist."""


class PermissionDeniedError(ValueError):
    """Raised when the caller is not allowed to act (e.g. not the captain)."""


class ConflictError(ValueError):
    """Raised when the current state forbids the action.

    Covers wrong match status, capacity exceeded, duplicate requests and lost
    races; a race loser gets the same message a sequential caller would.
    """
