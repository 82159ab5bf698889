"""
Stats store operations: the system-wide aggregate, endpoint switches and
snapshot sampling.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.models.stat import COUNTER_FIELDS, SYSTEM_STATS_ID, Stat

logger = logging.getLogger(__name__)


def increment_system_stats(db: Session, **counters: int) -> None:
    """Atomically add ``counters`` to the aggregate row.

    A missing aggregate row is left missing; the increment is a no-op.
    """
    unknown = set(counters) - set(COUNTER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown stats counters: {sorted(unknown)}")
    if not counters:
        return

    values = {
        name: getattr(Stat, name) + amount for name, amount in counters.items()
    }
    db.execute(
        update(Stat)
        .where(Stat.id == SYSTEM_STATS_ID)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def is_endpoint_enabled(db: Session, endpoint: str) -> bool:
    """Read the administrative switch for ``endpoint``.

    Endpoints are enabled unless the aggregate row carries an explicit
    ``is_enabled`` flag for them.
    """
    flags = db.execute(
        select(Stat.endpoints).where(Stat.id == SYSTEM_STATS_ID)
    ).scalar_one_or_none()
    if not flags:
        return True

    entry = flags.get(endpoint)
    if not isinstance(entry, dict) or "is_enabled" not in entry:
        return True
    return bool(entry["is_enabled"])


def sample_snapshot(db: Session) -> Optional[dict]:
    """Return one arbitrary stats document, or None if there are none.

    The pick is random on purpose: callers must not read it as "latest".
    """
    stat = db.execute(select(Stat).order_by(func.random()).limit(1)).scalar_one_or_none()
    if stat is None:
        return None

    snapshot = {name: getattr(stat, name) for name in COUNTER_FIELDS}
    snapshot["endpoints"] = stat.endpoints or {}
    return snapshot
