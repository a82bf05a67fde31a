"""
ISP Ticket Service - Main Application
======================================

Support ticketing for an internet service provider.

Modules:
- Tickets: Lifecycle, SLA deadlines, history and geo-ip enrichment
- Users: Accounts, roles and token authentication
- Dashboard: Ticket, SLA, performance and user metrics

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, geo-ip client, SLA policy file, metrics export
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

# Configuration
from config import settings

# Infrastructure
from infrastructure.database import close_database, create_tables, init_database

# Tickets Module - External services
from tickets.infrastructure import GeoIPClient, sla_policy_manager

# Module Routers
from dashboard.interfaces.controllers import router as dashboard_router
from tickets.interfaces.controllers import geoip_router, router as tickets_router
from users.interfaces.controllers import router as users_router

# Shared
from shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    register_exception_handlers,
)
from shared.infrastructure.grafana import GrafanaOTLPExporter, MetricsPushScheduler
from shared.infrastructure.logging import get_logger, setup_logging
from shared.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA policy and watch it for changes
    4. Create the geo-ip client
    5. Start the Grafana metrics push job

    SHUTDOWN:
    1. Stop the metrics push job
    2. Stop the SLA policy watcher
    3. Close the geo-ip client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting ISP Ticket Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Tables are created on startup; if the database is down the service
    # still starts and database-backed endpoints fail until it is back
    try:
        await create_tables()
        app.state.database_ready = True
    except (OSError, SQLAlchemyError) as e:
        app.state.database_ready = False
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading SLA policy")
    sla_policy_manager.load(settings.sla_config_path)
    sla_policy_manager.start_watching()

    if settings.geoip_enabled:
        app.state.geoip_client = GeoIPClient()
    else:
        logger.info("Geo-ip enrichment disabled")
        app.state.geoip_client = None

    metrics_scheduler = MetricsPushScheduler(GrafanaOTLPExporter(), app.state.metrics)
    await metrics_scheduler.start()
    app.state.metrics_scheduler = metrics_scheduler

    logger.info("ISP Ticket Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down ISP Ticket Service")

    await metrics_scheduler.stop()
    sla_policy_manager.stop_watching()

    if app.state.geoip_client is not None:
        await app.state.geoip_client.close()

    await close_database()

    logger.info("ISP Ticket Service shutdown complete")


API_DESCRIPTION = """
## ISP Support Ticketing

Customers open tickets about their internet connection; technicians work
them to resolution against per-priority SLA deadlines.

---

### Tickets

- `POST /api/tickets` - Open a ticket (location looked up from the client IP)
- `GET /api/tickets` - List tickets (customers see their own)
- `GET /api/tickets/{id}` - Ticket with full history
- `PUT /api/tickets/{id}` - Change status, priority, assignee or comment
- `DELETE /api/tickets/{id}` - Soft delete (administrators)
- `GET /api/tickets/metrics/summary` - Headline counts

### Users

- `POST /api/users` - Register
- `POST /api/users/login` - Obtain a bearer token
- `GET /api/users`, `GET /api/users/{id}`, `PUT /api/users/{id}`

### Dashboard

- `GET /api/dashboard?days=30` - Ticket, SLA, performance and user metrics

---

### SLA Deadlines

| Priority | Deadline |
|----------|----------|
| Critical | 4 hours  |
| High     | 12 hours |
| Medium   | 24 hours |
| Low      | 48 hours |

Deadlines are counted from creation, or from the last priority change.
"""


def create_app(metrics: Optional[MetricsRegistry] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        metrics: Registry to record into; a fresh one is created otherwise
    """
    app = FastAPI(
        title="ISP Ticket Service API",
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.metrics = metrics or MetricsRegistry()

    # === Middleware (last added runs first) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # === Module Routers ===
    app.include_router(tickets_router)
    app.include_router(geoip_router)
    app.include_router(users_router)
    app.include_router(dashboard_router)

    app.add_api_route("/metrics", metrics_snapshot, methods=["GET"], tags=["Health"])
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "database": "connected",
                            "sla_policy": "loaded",
                            "geoip": "enabled",
                            "metrics_push": "running"
                        }
                    }
                }
            }
        }
    })
    app.add_api_route("/", root, methods=["GET"], tags=["Root"])

    return app


# === Health and Info Endpoints ===

async def metrics_snapshot(request: Request):
    """Current value of every in-process instrument."""
    return request.app.state.metrics.snapshot()


async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database, SLA policy, geo-ip and metrics push state.
    """
    state = request.app.state
    scheduler = getattr(state, "metrics_scheduler", None)
    database_ready = getattr(state, "database_ready", None)

    checks = {
        "database": {True: "connected", False: "unavailable"}.get(database_ready, "unknown"),
        "sla_policy": "loaded",
        "geoip": "enabled" if getattr(state, "geoip_client", None) is not None else "disabled",
        "metrics_push": "running" if scheduler and scheduler.is_running else "stopped"
    }

    return {
        "status": "healthy" if database_ready is not False else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": "ISP Ticket Service",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
    }


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
