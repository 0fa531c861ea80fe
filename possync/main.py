import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from possync.api.routes.cancellations import router as cancellations_router
from possync.api.routes.sync import router as sync_router
from possync.core.config import settings
from possync.core.logging import setup_logging
from possync.db.database import build_session_factory, create_db_engine
from possync.services.notifications import NotificationHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s started", settings.app_name)
    try:
        yield
    finally:
        app.state.engine.dispose()
        logger.info("%s stopped, connection pool disposed", settings.app_name)


def create_app(database_url: str | None = None, notifier: NotificationHub | None = None) -> FastAPI:
    setup_logging()

    engine = create_db_engine(database_url or settings.database_url, echo=settings.db_echo)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.notifier = notifier or NotificationHub()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(sync_router)
    app.include_router(cancellations_router)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok"}

    return app
