import uuid
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy import Uuid
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from app.core.database import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _default_roles() -> list:
    return ["user"]


class User(Base):
    """API consumer. Rows are provisioned outside this service."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token = Column(String, unique=True, nullable=False, index=True)
    req_quota = Column(Integer, default=0, nullable=False)
    req_consumed = Column(Integer, default=0, nullable=False)
    req_count = Column(Integer, default=0, nullable=False)
    banned = Column(Boolean, default=False, nullable=False)
    roles = Column(JSON, default=_default_roles, nullable=False)
    # Overrides the limiter's default maximum when set
    rate_limit = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)

    # Relationships
    endpoint_requests = relationship(
        "UserEndpointRequest", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def statistics(self) -> dict:
        """Per-endpoint request counts as {endpoint: count}."""
        return {row.endpoint: row.count for row in self.endpoint_requests}


class UserEndpointRequest(Base):
    __tablename__ = "user_endpoint_requests"
    __table_args__ = (UniqueConstraint("user_id", "endpoint"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    endpoint = Column(String, nullable=False)
    count = Column(Integer, default=0, nullable=False)

    # Relationships
    user = relationship("User", back_populates="endpoint_requests")
