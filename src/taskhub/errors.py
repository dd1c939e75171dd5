"""Typed errors raised by the identity core.

Learn: Services never build HTTP responses. They raise one of these and
the exception handler registered in main.py turns it into a JSON body
with the matching status code.
"""


class TaskHubError(Exception):
    """Base class. Carries the HTTP status the API layer should use."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Malformed(TaskHubError):
    status_code = 400
    default_detail = "Malformed request"


class Unauthorized(TaskHubError):
    status_code = 401
    default_detail = "Unauthorized"


class Forbidden(TaskHubError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(TaskHubError):
    status_code = 404
    default_detail = "Not found"


class Conflict(TaskHubError):
    status_code = 409
    default_detail = "Conflict"


# ─── Token errors ────────────────────────────────────────


class TokenError(Unauthorized):
    """Raised when token verification fails."""

    default_detail = "Invalid token"


class TokenExpired(TokenError):
    default_detail = "Token has expired"


class TokenKindMismatch(TokenError):
    default_detail = "Token is not valid for this operation"


class TokenMalformed(TokenError, Malformed):
    status_code = 400
    default_detail = "Token is malformed"
