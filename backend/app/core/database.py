import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.core.config import settings

logger = logging.getLogger(__name__)

_engine_kwargs = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # TestClient and local scripts may access SQLite connections across threads.
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_pre_ping"] = True

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """Yield one session per request.

    The session stays usable after ``close()``, which lets background tasks
    scheduled by a handler keep writing through it once the response is out.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None) -> None:
    # Register every model on Base.metadata before creating
    from app.models import stat, user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")


def ping(bind=None) -> None:
    with (bind or engine).connect() as connection:
        connection.execute(text("SELECT 1"))
