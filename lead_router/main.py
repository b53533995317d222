"""Lead Router — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lead_router.adapters.persistence.database import engine
from lead_router.config import settings
from lead_router.infrastructure.api.routes_events import router as events_router
from lead_router.infrastructure.api.routes_health import router as health_router
from lead_router.infrastructure.api.routes_leads import router as leads_router
from lead_router.infrastructure.api.routes_rotation import router as rotation_router
from lead_router.infrastructure.api.routes_rules import router as rules_router
from lead_router.infrastructure.worker import SweepWorker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)

    worker = None
    if settings.rotation_sweep_enabled:
        worker = SweepWorker()
        worker.start()
    yield
    if worker is not None:
        await worker.stop()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Lead Router — assignment & rotation engine",
        description="Rule-based lead assignment, distribution and SLA-driven rotation",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for the CRM frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(health_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(leads_router, prefix="/api")
    app.include_router(events_router, prefix="/api")
    app.include_router(rotation_router, prefix="/api")

    return app


app = create_app()
