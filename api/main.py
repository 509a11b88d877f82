"""
Livestock Auction Platform API - Main Application.

FastAPI application with CORS enabled for frontend communication.

Every response, success or failure, uses the envelope defined by
`api.models.ApiResponse`. Domain errors map to status codes:
- ValidationError, ConflictError -> 400
- NotFoundError -> 404
- StorageError, DependencyError and anything unexpected -> 500
  (the underlying error is only exposed when APP_ENV=development)
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api import __version__
from api.models import ApiResponse
from domain.errors import AuctionError, ConflictError, NotFoundError, ValidationError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Livestock Auction Platform API",
    description="REST API for livestock auctions, buyer registrations and auction reporting",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

_cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=_cors_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _is_development() -> bool:
    return os.getenv("APP_ENV", "production").lower() == "development"


def _envelope(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    body = ApiResponse(success=False, message=message, error=error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# ============================================================================
# Exception handlers
# ============================================================================

@app.exception_handler(AuctionError)
def handle_auction_error(request: Request, exc: AuctionError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return _envelope(404, exc.message)
    if isinstance(exc, (ValidationError, ConflictError)):
        return _envelope(400, exc.message)

    logger.error(
        "Request failed",
        exc_info=exc,
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )
    return _envelope(500, "Server error", exc.message if _is_development() else None)


@app.exception_handler(HTTPException)
def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return _envelope(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {location}: {first.get('msg')}" if location else "Invalid request"
    return _envelope(400, message)


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", exc_info=exc, extra={"path": request.url.path})
    return _envelope(500, "Server error", str(exc) if _is_development() else None)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "livestock-auction-platform-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Livestock Auction Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import auctions, registrations

app.include_router(auctions.router, prefix="/api/v1", tags=["Auctions"])
app.include_router(registrations.router, prefix="/api/v1", tags=["Registrations"])
