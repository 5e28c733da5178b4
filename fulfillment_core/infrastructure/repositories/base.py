import logging
from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError

from fulfillment_core.core.errors import TransientStoreError
from fulfillment_core.infrastructure.database import SessionLocal

logger = logging.getLogger(__name__)

class SqlRepository:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
        except (OperationalError, InterfaceError) as e:
            logger.error(f"❌ DB Error: {e}")
            session.rollback()
            raise TransientStoreError() from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
