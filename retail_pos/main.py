import logging

from fastapi import FastAPI

from retail_pos.config import settings
from retail_pos.logging_config import setup_logging
from retail_pos.routers import (
    analytics,
    auth,
    catalog,
    customers,
    pos,
    reports,
    security,
    staff,
    stores,
    transactions,
)
from retail_pos.security.csrf import install_csrf_cookie_middleware
from retail_pos.security.headers import install_security_headers
from retail_pos.security.sessions import SessionRegistry, install_auth_session_middleware
from retail_pos.seed_example import build_demo_directory, seed
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.cart_service import CartRegistry
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.user_directory_service import UserDirectory

logger = logging.getLogger(__name__)


def create_app(
    *,
    store: EntityStore | None = None,
    directory: UserDirectory | None = None,
    seed_demo_data: bool | None = None,
) -> FastAPI:
    setup_logging()
    app = FastAPI(title='Retail POS')

    seed_demo_data = settings.seed_demo_data if seed_demo_data is None else seed_demo_data
    app.state.store = store or EntityStore()
    app.state.directory = directory or build_demo_directory()
    app.state.carts = CartRegistry()
    app.state.audit = AuditLog()
    app.state.sessions = SessionRegistry()
    if seed_demo_data:
        seed(app.state.store)
        logger.info('Seeded demo catalog, customers and store locations')

    install_security_headers(app)
    install_csrf_cookie_middleware(app)
    install_auth_session_middleware(app)

    app.include_router(auth.router)
    app.include_router(catalog.router)
    app.include_router(customers.router)
    app.include_router(stores.router)
    app.include_router(pos.router)
    app.include_router(transactions.router)
    app.include_router(analytics.router)
    app.include_router(reports.router)
    app.include_router(staff.router)
    app.include_router(security.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


app = create_app()
