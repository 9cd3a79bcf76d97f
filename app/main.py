from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.applications import router as applications_router
from app.api.error_handlers import register_error_handlers
from app.api.health import router as health_router
from app.api.manual_payments import router as manual_payments_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.orgs import router as orgs_router
from app.api.permissions import router as permissions_router
from app.api.roles import router as roles_router
from app.api.tiers import router as tiers_router
from app.api.webhooks import router as webhooks_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware, install_log_filter

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_log_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one side fails.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="cohort-access-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(permissions_router)
app.include_router(orgs_router)
app.include_router(roles_router)
app.include_router(tiers_router)
app.include_router(applications_router)
app.include_router(manual_payments_router)
app.include_router(webhooks_router)

logger.info(
    "cohort-access-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
