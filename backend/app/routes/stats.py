import logging
import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthError, NotFoundError
from app.core.limiter import enforce_rate_limit
from app.schemas.stats import StatsSnapshot
from app.services import stats

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])
logger = logging.getLogger(__name__)


def _key_matches(key: Optional[str]) -> bool:
    if not key:
        return False
    return secrets.compare_digest(key.encode(), settings.ACCESS_KEY.encode())


@router.get("", response_model=StatsSnapshot)
def get_stats(
    background_tasks: BackgroundTasks,
    key: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    """Return one stats snapshot to holders of the access key."""
    if not _key_matches(key):
        raise AuthError("Unauthorized")

    try:
        snapshot = stats.sample_snapshot(db)
    except Exception:
        logger.error("Stats snapshot lookup failed", exc_info=True)
        db.rollback()
        stats.increment_system_stats(db, failed_requests=1)
        raise

    if snapshot is None:
        raise NotFoundError("Could not find any Stats")

    # Bookkeeping runs after the response has been sent
    background_tasks.add_task(stats.increment_system_stats, db, stats_requests=1)
    return snapshot
