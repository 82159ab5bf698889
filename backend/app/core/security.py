"""
API key authorization.

``authorize(role)`` builds a route dependency that validates the caller's
API key, charges the request against the user's quota and keeps the system
counters current. Checks run in a fixed order so unauthenticated traffic is
rejected before any user row is touched:

    endpoint disabled   -> 403  (no counters)
    no Authorization    -> 400  (endpoints_requests, daily_requests)
    unknown key         -> 401  (failed_requests, endpoints_requests, daily_requests)
    banned              -> 403  (banned_requests, endpoints_requests, daily_requests)
    quota exhausted     -> 403
    role missing        -> 403
    otherwise           -> user returned to the route
                           (success_requests, endpoints_requests, daily_requests)

Reading the endpoint switch is best effort: what happens when it fails is
the authorizer's ``on_lookup_error`` policy, set the same way as the rate
limiter's.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthError, ClientError, ForbiddenError
from app.core.limiter import LookupErrorPolicy
from app.models.user import User
from app.services import stats, users

logger = logging.getLogger(__name__)

USER_ROLE = "user"


def endpoint_from_path(path: str) -> str:
    """Name the endpoint after the last segment of the URL path."""
    return path.rstrip("/").rsplit("/", 1)[-1]


class Authorizer:
    """Route dependency restricting access to API keys holding ``required_role``."""

    def __init__(self, required_role: str, on_lookup_error: LookupErrorPolicy):
        self.required_role = required_role
        self.on_lookup_error = on_lookup_error

    def endpoint_enabled(self, db: Session, endpoint: str) -> bool:
        try:
            return stats.is_endpoint_enabled(db, endpoint)
        except Exception:
            if self.on_lookup_error == "raise":
                raise
            logger.warning(
                "Endpoint flag lookup failed, treating endpoint as enabled",
                extra={"endpoint": endpoint},
                exc_info=True,
            )
            db.rollback()
            return True

    def __call__(self, request: Request, db: Session = Depends(get_db)) -> User:
        endpoint = endpoint_from_path(request.url.path)

        if not self.endpoint_enabled(db, endpoint):
            logger.info("Rejected request to disabled endpoint", extra={"endpoint": endpoint})
            raise ForbiddenError(
                f"The endpoint '{endpoint}' is currently disabled. "
                f"Go to {settings.SUPPORT_URL} for support."
            )

        key = request.headers.get("authorization")
        if not key:
            stats.increment_system_stats(db, endpoints_requests=1, daily_requests=1)
            raise ClientError(f"Bad Request. Go to {settings.DOCS_URL} for more info.")

        user = users.find_by_token(db, key)
        if user is not None:
            # Snapshot before accounting; the commit below expires the instance
            user_id = user.id
            quota = user.req_quota
            banned = user.banned
            roles = list(user.roles or [])

        # Runs before the existence check; an unknown key updates no row.
        users.apply_request_accounting(db, key)

        if user is None:
            stats.increment_system_stats(
                db, failed_requests=1, endpoints_requests=1, daily_requests=1
            )
            logger.warning("Rejected unknown API key", extra={"endpoint": endpoint})
            raise AuthError(f"Invalid API key. Go to {settings.DOCS_URL} for more info.")

        if banned:
            stats.increment_system_stats(
                db, banned_requests=1, endpoints_requests=1, daily_requests=1
            )
            logger.warning(
                f"Rejected banned user {user_id}", extra={"endpoint": endpoint}
            )
            raise ForbiddenError("You've been banned from using the API.")

        if quota <= 0:
            logger.info(f"User {user_id} has no quota left", extra={"endpoint": endpoint})
            raise ForbiddenError("You've exhausted your request limits.")

        if self.required_role not in roles:
            logger.warning(
                f"User {user_id} lacks role {self.required_role!r}",
                extra={"endpoint": endpoint},
            )
            raise ForbiddenError("Insufficient privileges to access this endpoint.")

        users.record_endpoint_request(db, user_id, endpoint)
        stats.increment_system_stats(
            db, success_requests=1, endpoints_requests=1, daily_requests=1
        )
        return user


def authorize(
    required_role: str, on_lookup_error: Optional[LookupErrorPolicy] = None
) -> Authorizer:
    """
    Dependency factory restricting a route to API keys holding ``required_role``.

    ``on_lookup_error`` defaults to ENDPOINT_FLAG_ON_LOOKUP_ERROR.
    """
    return Authorizer(
        required_role, on_lookup_error or settings.ENDPOINT_FLAG_ON_LOOKUP_ERROR
    )
