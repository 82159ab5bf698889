"""
User store operations used by the rate limiter and the authorizer.

All counter writes are single UPDATE statements of the form
``col = col + n`` so concurrent requests for the same user never lose an
increment; no extra locking happens here.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import User, UserEndpointRequest

logger = logging.getLogger(__name__)


def find_by_token(db: Session, token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    return db.execute(select(User).where(User.token == token)).scalar_one_or_none()


def apply_request_accounting(db: Session, token: str) -> int:
    """Charge one request to the user holding ``token``.

    Quota is decremented (and consumption incremented) only while quota is
    positive; the total request count always grows. An unknown token matches
    no row and nothing changes. Returns the number of rows updated.
    """
    has_quota = User.req_quota > 0
    result = db.execute(
        update(User)
        .where(User.token == token)
        .values(
            req_quota=case((has_quota, User.req_quota - 1), else_=User.req_quota),
            req_consumed=case(
                (has_quota, User.req_consumed + 1), else_=User.req_consumed
            ),
            req_count=User.req_count + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def _increment_endpoint_row(db: Session, user_id: uuid.UUID, endpoint: str) -> int:
    result = db.execute(
        update(UserEndpointRequest)
        .where(
            UserEndpointRequest.user_id == user_id,
            UserEndpointRequest.endpoint == endpoint,
        )
        .values(count=UserEndpointRequest.count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def record_endpoint_request(db: Session, user_id: uuid.UUID, endpoint: str) -> None:
    """Increment the user's counter for ``endpoint``, creating it on first use."""
    if _increment_endpoint_row(db, user_id, endpoint):
        db.commit()
        return

    db.add(UserEndpointRequest(user_id=user_id, endpoint=endpoint, count=1))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request created the row first
        db.rollback()
        logger.debug("Endpoint counter created concurrently, retrying increment")
        _increment_endpoint_row(db, user_id, endpoint)
        db.commit()
