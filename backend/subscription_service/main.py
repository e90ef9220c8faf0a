"""
Subscription Service - FastAPI Application

Main entry point for the subscription lifecycle API.
Provides endpoints for trials, plan changes, feature limits and usage.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_service.config.settings import settings
from subscription_service.infrastructure.exceptions import (
    DuplicateError,
    FeatureLimitExceededError,
    NotFoundError,
    PaymentProcessingError,
    SubscriptionError,
    SubscriptionServiceError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Subscription Service starting in {settings.environment} mode...")

    if settings.database_url:
        try:
            from subscription_service.infrastructure.db.database import init_db
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    runner = None
    if settings.scheduler_enabled:
        from subscription_service.infrastructure.services.lifecycle_scheduler import (
            DailyScanRunner,
            get_lifecycle_scheduler,
        )
        runner = DailyScanRunner(get_lifecycle_scheduler(), settings)
        runner.start()

    yield

    # Shutdown
    if runner is not None:
        await runner.stop()

    if settings.database_url:
        try:
            from subscription_service.infrastructure.db.database import close_db
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.warning(f"Database shutdown error: {e}")

    logger.info("Subscription Service shutting down...")


app = FastAPI(
    title="Subscription Service",
    description="Trial, plan and feature-limit lifecycle for organizations",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(DuplicateError)
async def duplicate_error_handler(request: Request, exc: DuplicateError):
    """Handle unique constraint conflicts."""
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


@app.exception_handler(SubscriptionError)
async def subscription_error_handler(request: Request, exc: SubscriptionError):
    """Handle rejected lifecycle transitions."""
    logger.info(f"Rejected transition: {exc.message}")
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


@app.exception_handler(FeatureLimitExceededError)
async def feature_limit_error_handler(request: Request, exc: FeatureLimitExceededError):
    """Handle enforced feature limits."""
    content = exc.to_dict()
    content["code"] = "FEATURE_LIMIT_EXCEEDED"
    return JSONResponse(
        status_code=403,
        content=content,
    )


@app.exception_handler(PaymentProcessingError)
async def payment_error_handler(request: Request, exc: PaymentProcessingError):
    """Handle unprocessable payment callbacks."""
    return JSONResponse(
        status_code=402,
        content=exc.to_dict(),
    )


@app.exception_handler(SubscriptionServiceError)
async def general_error_handler(request: Request, exc: SubscriptionServiceError):
    """Handle all other application errors."""
    logger.error(f"Unhandled service error: {exc.message}", exc_info=exc.original_error)
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "subscription-service"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Subscription Service API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from subscription_service.api.routes import (  # noqa: E402
    admin,
    limits,
    plans,
    subscriptions,
    webhooks,
)

app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(limits.router, prefix="/api", tags=["Limits & Usage"])
app.include_router(plans.router, prefix="/api", tags=["Plans"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])


# For development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "subscription_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
