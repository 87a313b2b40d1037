"""
Lead-to-Revenue Tracker API - Main Application.

Receives lead and payment webhooks, connects the accounting platform, and
serves monthly marketing ROI summaries.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from config import get_settings
from domain.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


_configure_logging()

# Create FastAPI application
app = FastAPI(
    title="Lead-to-Revenue Tracker API",
    description="Attribute payments to lead sources and report monthly marketing ROI",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "detail": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "detail": str(exc)})


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "lead-revenue-tracker-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Lead-to-Revenue Tracker API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "webhooks": {
            "leads": "/webhooks/hcp",
            "payments": "/webhooks/qbo"
        },
        "auth": "/auth/quickbooks"
    }


# Import and include routers
from api.routers import ad_spend, auth, leads, summaries, webhooks

app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(auth.router, tags=["Auth"])
app.include_router(ad_spend.router, prefix="/api/v1", tags=["Ad Spend"])
app.include_router(summaries.router, prefix="/api/v1", tags=["Summaries"])
app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
