import logging
import time

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from fulfillment_core.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str):
    # SQLite connections are handed across threads by the session factory
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine):
    # Repositories hand detached rows back to the services
    return sessionmaker(bind=engine, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_session_factory(engine)


def init_db(bind=None, retries: int = 1, wait_seconds: float = 0) -> bool:
    """Create tables, retrying while the database is still starting up."""
    bind = bind or engine
    for attempt in range(retries):
        try:
            logger.info(f"🔄 Attempting DB connection ({attempt + 1}/{retries})...")
            Base.metadata.create_all(bind=bind)
            logger.info("✅ DB Connected and Tables Created.")
            return True
        except OperationalError:
            logger.warning(f"⚠️ DB not ready yet. Waiting {wait_seconds}s...")
            time.sleep(wait_seconds)
    logger.error("❌ Could not connect to DB after retries.")
    return False
