from fastapi import FastAPI

from fulfillment_core.application.demand_service import DemandService
from fulfillment_core.application.orchestrator import OrderOrchestrator
from fulfillment_core.application.pickup_verification import PickupVerificationService
from fulfillment_core.application.settlement import SettlementEngine
from fulfillment_core.core.clock import utcnow
from fulfillment_core.core.config import settings
from fulfillment_core.core.errors import FulfillmentError
from fulfillment_core.infrastructure.repositories.order_repository import SqlOrderRepository
from fulfillment_core.infrastructure.repositories.payout_repository import SqlPayoutRepository
from fulfillment_core.interfaces import admin_api, orders_api


def create_app(session_factory=None, lease_manager=None, notifier=None, clock=utcnow) -> FastAPI:
    """
    Builds the app with every collaborator passed in explicitly; nothing is
    shared through module globals.
    """
    app = FastAPI(title=settings.PROJECT_NAME)

    order_repo = SqlOrderRepository(session_factory)
    payout_repo = SqlPayoutRepository(session_factory)

    verification = PickupVerificationService(order_repo, clock=clock)
    app.state.order_repo = order_repo
    app.state.verification = verification
    app.state.orchestrator = OrderOrchestrator(order_repo, verification, notifier=notifier, clock=clock)
    app.state.demand = DemandService(order_repo, clock=clock)
    app.state.settlement = SettlementEngine(
        order_repo, payout_repo, lease_manager=lease_manager, notifier=notifier, clock=clock
    )

    app.add_exception_handler(FulfillmentError, orders_api.fulfillment_error_handler)
    app.include_router(orders_api.router)
    app.include_router(admin_api.router)

    @app.get("/")
    def health_check():
        return {"status": "active", "system": settings.PROJECT_NAME}

    return app
