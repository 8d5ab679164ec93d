"""
Tabledesk REST API.
Entry point for the FastAPI server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from tabledesk import __version__
from tabledesk.routers import orders_router, portal_router, tables_router, transactions_router
from tabledesk.services.events.publisher import close_notifier
from tabledesk_shared.config.logging import api_logger as logger
from tabledesk_shared.config.logging import setup_logging
from tabledesk_shared.config.settings import settings
from tabledesk_shared.infrastructure.correlation import CorrelationIdMiddleware
from tabledesk_shared.infrastructure.db import SessionLocal
from tabledesk_shared.utils.exceptions import AppException


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging()

    config_errors = settings.validate_production()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(f"Production configuration errors: {'; '.join(config_errors)}")

    logger.info("Starting REST API", port=settings.api_port, env=settings.environment)

    yield

    logger.info("Shutting down REST API")
    close_notifier()


app = FastAPI(
    title="Tabledesk REST API",
    description="Restaurant order, table session and payment lifecycle",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render domain errors as {"detail", "code", ...context}."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Health check, including database connectivity."""
    database = "healthy"
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        database = "unhealthy"

    body = {
        "status": "healthy" if database == "healthy" else "degraded",
        "service": "tabledesk",
        "environment": settings.environment,
        "database": database,
    }
    if database != "healthy":
        return JSONResponse(content=body, status_code=503)
    return body


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(orders_router)
app.include_router(portal_router)
app.include_router(tables_router)
app.include_router(transactions_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tabledesk.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
