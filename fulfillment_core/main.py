from fulfillment_core.bootstrap import create_app
from fulfillment_core.core.config import settings
from fulfillment_core.core.logging import configure_logging

# 1. Infrastructure Imports
from fulfillment_core.infrastructure.database import SessionLocal, engine, init_db
from fulfillment_core.infrastructure.lease_manager import LeaseManager
from fulfillment_core.infrastructure.notification_service import NotificationService

configure_logging(settings.LOG_LEVEL)

# ---------------------------------------------------------
# DATABASE CONNECTION (With Retry Logic)
# ---------------------------------------------------------
init_db(engine, retries=settings.DB_CONNECT_RETRIES, wait_seconds=settings.DB_CONNECT_WAIT_SECONDS)

# ---------------------------------------------------------
# COMPOSITION ROOT
# ---------------------------------------------------------
app = create_app(
    session_factory=SessionLocal,
    lease_manager=LeaseManager(settings.REDIS_URL),
    notifier=NotificationService(),
)
