# errors.py — Typed failures raised by the access and board-ordering core
#
# Handlers map these to HTTP via the exception handler in main.py:
#   NotFoundError → 404, ForbiddenError → 403,
#   InvariantViolation → 400, ConflictError → 409


class CollabError(Exception):
    """Base class for every rule the core refuses to break"""

    status_code = 500
    kind = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(CollabError):
    status_code = 404
    kind = "not_found"


class ForbiddenError(CollabError):
    status_code = 403
    kind = "forbidden"


class InvariantViolation(CollabError):
    """The request would break a structural rule (last admin, non-empty column, ...)"""

    status_code = 400
    kind = "invariant_violation"


class ConflictError(CollabError):
    """Transaction isolation failure; the caller retries with a fresh snapshot"""

    status_code = 409
    kind = "conflict"
