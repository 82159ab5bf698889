"""
Error taxonomy for the request pipeline.

Every rejection the pipeline can foresee is raised as one of these at the
point where it is detected. ``app.main`` registers the handlers that turn
them into JSON bodies:

    APIError        -> {"message": "..."}
    RateLimitError  -> {"status": 429, "message": "..."}  + Retry-After

Anything else reaching the app is answered as an InternalError (500).
"""

from typing import Dict, Optional


class APIError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None
    ):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)


class ClientError(APIError):
    """400: the caller sent no credential."""

    status_code = 400
    default_message = "Bad Request"


class AuthError(APIError):
    """401: the credential matches nothing."""

    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(APIError):
    """403: banned, quota exhausted, missing role or endpoint disabled."""

    status_code = 403
    default_message = "Forbidden"


class NotFoundError(APIError):
    status_code = 404
    default_message = "Not Found"


class RateLimitError(APIError):
    """429: the caller's window counter is full."""

    status_code = 429
    default_message = "You've exhausted your ratelimit, please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        self.retry_after = max(int(retry_after), 0)
        super().__init__(message, headers={"Retry-After": str(self.retry_after)})


class InternalError(APIError):
    status_code = 500
    default_message = "Internal server error"
