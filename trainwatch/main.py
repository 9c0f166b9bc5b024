"""
TrainWatch API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import engine, Base
from .limiter import limiter
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .responses import ApiException, api_exception_handler
from .routes import (
    auth_router,
    employees_router,
    trainings_router,
    alerts_router,
    dashboard_router,
    subscription_router,
    health_router,
)

settings = get_settings()

# Create tables (in production, use migrations instead)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry alert scheduler with the app and stop it on shutdown"""
    scheduler = None
    if settings.alert_scheduler_enabled:
        try:
            from .worker.scheduler import get_alert_scheduler
            scheduler = get_alert_scheduler()
            scheduler.start()
        except Exception as e:
            api_logger.error("Failed to start expiry alert scheduler", error=e)
            scheduler = None

    yield  # App is running

    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title="TrainWatch API",
    description="Training compliance tracking with expiry alerts",
    version="1.0.0",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(ApiException, api_exception_handler)

app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware (only in debug mode)
if settings.debug:
    app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=3600,
)

# Routes
app.include_router(auth_router)
app.include_router(employees_router)
app.include_router(trainings_router)
app.include_router(alerts_router)
app.include_router(dashboard_router)
app.include_router(subscription_router)
app.include_router(health_router)


@app.get("/")
def root():
    return {
        "message": "TrainWatch API",
        "docs": "/api/docs" if settings.debug else "Disabled in production",
    }


def run():
    """Serve the API with uvicorn (``trainwatch-api`` console script)"""
    import uvicorn

    uvicorn.run("trainwatch.main:app", host="0.0.0.0", port=8000, log_level="debug" if settings.debug else "info")


if __name__ == "__main__":
    run()
