"""
Lead Qualifier - FastAPI Application
Main entry point with all routes configured.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from lead_qualifier.config import settings
from lead_qualifier.database import init_db
from lead_qualifier.core.exceptions import LeadQualifierException, status_code_for
from lead_qualifier.services.webhook_service import RetryScheduler, get_webhook_dispatcher

# Import all API routers
from lead_qualifier.api import qualify, leads, scoring, webhooks, notifications

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    await init_db()
    dispatcher = get_webhook_dispatcher()
    scheduler = None
    if settings.WEBHOOK_SCHEDULER_ENABLED:
        scheduler = RetryScheduler(dispatcher)
        await scheduler.start()
    yield
    # Shutdown
    if scheduler is not None:
        await scheduler.stop()
    await dispatcher.aclose()


app = FastAPI(
    title="Lead Qualifier API",
    description="Adaptive lead scoring: ICP rules, learned models and signed webhook notifications",
    version="2.4.0",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LeadQualifierException)
async def lead_qualifier_exception_handler(request: Request, exc: LeadQualifierException):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Include all routers
app.include_router(qualify.router)
app.include_router(leads.router)
app.include_router(scoring.router)
app.include_router(webhooks.router)
app.include_router(notifications.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "message": "Lead Qualifier API is running",
        "version": "2.4.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "version": "2.4.0"
    }
