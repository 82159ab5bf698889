from sqlalchemy import JSON, Column, Integer, String

from app.core.database import Base

# Primary key of the aggregate row every request increments
SYSTEM_STATS_ID = "systemstats"

COUNTER_FIELDS = (
    "daily_requests",
    "endpoints_requests",
    "success_requests",
    "failed_requests",
    "banned_requests",
    "stats_requests",
)


class Stat(Base):
    """A stats document: the live aggregate or a historical snapshot."""

    __tablename__ = "stats"

    id = Column(String, primary_key=True)
    daily_requests = Column(Integer, default=0, nullable=False)
    endpoints_requests = Column(Integer, default=0, nullable=False)
    success_requests = Column(Integer, default=0, nullable=False)
    failed_requests = Column(Integer, default=0, nullable=False)
    banned_requests = Column(Integer, default=0, nullable=False)
    stats_requests = Column(Integer, default=0, nullable=False)
    # {endpoint_name: {"is_enabled": bool}}
    endpoints = Column(JSON, default=dict, nullable=False)
