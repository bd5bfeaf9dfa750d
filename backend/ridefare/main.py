"""FastAPI application for the RideFare pricing service."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ridefare.api.endpoints import router
from ridefare.config import settings
from ridefare.errors import AccountNotFound, PricingError
from ridefare.logging_setup import setup_logging

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(AccountNotFound)
async def account_not_found_handler(request: Request, exc: AccountNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/")
async def root():
    """Root endpoint with service metadata."""
    return {
        "message": "RideFare Pricing Service",
        "version": settings.API_VERSION,
        "docs": "/docs",
    }
