"""
Fixed-window rate limiter shared across the application.

Counters live in a `limits` storage (the backend slowapi is built on), so
the same code runs against in-process memory for a single instance
(``memory://``) or a shared Redis for several (``redis://host:6379``).
Clients are identified by remote address via slowapi's key function.

A caller whose API key belongs to a user with ``rate_limit`` set gets that
value as the window maximum instead of the default. Looking the user up is
best effort: what happens when it fails is the ``on_lookup_error`` policy.

In tests the limiter is enabled=False so that rapid test requests
don't trigger 429 responses (see conftest.py).
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import Depends, Request, Response
from limits.storage import storage_from_string
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import RateLimitError
from app.services import users

logger = logging.getLogger(__name__)

LookupErrorPolicy = Literal["use-default", "raise"]


@dataclass(frozen=True)
class WindowState:
    limit: int
    remaining: int
    reset_at: float


class RateLimiter:
    """Per-identity request counter over fixed windows."""

    key_prefix = "keygate-ratelimit"

    def __init__(
        self,
        window_seconds: int = 60,
        default_limit: int = 20,
        storage_uri: str = "memory://",
        on_lookup_error: LookupErrorPolicy = "use-default",
        enabled: bool = True,
    ):
        self.window_seconds = window_seconds
        self.default_limit = default_limit
        self.on_lookup_error = on_lookup_error
        self.enabled = enabled
        self._storage = storage_from_string(storage_uri)

    def _key(self, identity: str) -> str:
        return f"{self.key_prefix}/{identity}"

    def hit(self, identity: str, limit: Optional[int] = None) -> WindowState:
        """Count one request for ``identity`` and enforce ``limit``.

        The window opens on the identity's first request and closes
        ``window_seconds`` later. Raises RateLimitError once the count
        exceeds the limit.
        """
        limit = limit or self.default_limit
        key = self._key(identity)
        count = self._storage.incr(key, self.window_seconds)
        reset_at = self._storage.get_expiry(key)

        if count > limit:
            raise RateLimitError(retry_after=math.ceil(reset_at - time.time()))
        return WindowState(limit=limit, remaining=limit - count, reset_at=reset_at)

    def current(self, identity: str) -> int:
        return self._storage.get(self._key(identity))

    def reset(self) -> None:
        self._storage.reset()


limiter = RateLimiter(
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    default_limit=settings.RATE_LIMIT_MAX,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    on_lookup_error=settings.RATE_LIMIT_ON_LOOKUP_ERROR,
)


def resolve_limit(db: Session, token: Optional[str]) -> int:
    """Effective window maximum for the caller holding ``token``."""
    try:
        user = users.find_by_token(db, token)
    except Exception:
        if limiter.on_lookup_error == "raise":
            raise
        logger.warning(
            "Rate limit override lookup failed, applying default limit",
            exc_info=True,
        )
        db.rollback()
        return limiter.default_limit

    if user is not None and user.rate_limit:
        return user.rate_limit
    return limiter.default_limit


def enforce_rate_limit(
    request: Request, response: Response, db: Session = Depends(get_db)
) -> None:
    if not limiter.enabled:
        return

    limit = resolve_limit(db, request.headers.get("authorization"))
    identity = get_remote_address(request)
    try:
        state = limiter.hit(identity, limit)
    except RateLimitError:
        logger.info(
            "Rate limit exceeded",
            extra={"client_ip": identity, "request_path": request.url.path},
        )
        raise

    response.headers["X-RateLimit-Limit"] = str(state.limit)
    response.headers["X-RateLimit-Remaining"] = str(state.remaining)
