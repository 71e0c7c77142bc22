from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.config import settings
from backoffice.api.v1.router import api_router
from backoffice.core.errors import BackofficeError, PersistenceError
from backoffice.core.logging_config import setup_logging
from backoffice.database import async_session_factory, with_timeout
from backoffice.jobs.scheduler import get_job_status, start_scheduler, shutdown_scheduler


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging
    - Start background scheduler (daily warranty digest)

    Schema is managed by Alembic (`alembic upgrade head`).
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    if settings.SCHEDULER_ENABLED:
        shutdown_scheduler()
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Companies", "description": "Companies (tenants), members and invitations"},
    {"name": "Sales", "description": "Sales; finalizing a sale creates its warranties"},
    {"name": "Warranties", "description": "Warranty lookup, listing with derived status, deactivation"},
    {"name": "Services", "description": "Repair tracking: received -> in_repair -> delivered"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

API_DESCRIPTION = """
## Back Office API

Multi-company back office tracking product warranties and their repair history.

### Authentication
All `/api/v1` endpoints require a bearer token issued by the identity service.
Routes without `{company_id}` select the company with the `X-Company-ID`
header, or the token's `company_id` claim.

### Error Codes
| Code | Description |
|------|-------------|
| 400 | Bad Request - Invalid input or missing company context |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Not a member, or role lacks the capability |
| 404 | Not Found - Resource doesn't exist in this company |
| 409 | Conflict - Duplicate resource or open service already exists |
| 422 | Unprocessable Entity - Schema violation or invalid status transition |
| 500 | Internal Server Error |
| 504 | Gateway Timeout - Database call exceeded its bound |
"""


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


def _error_response(request: Request, status_code: int, body: dict, headers=None) -> JSONResponse:
    body = {**body, "path": str(request.url.path), "method": request.method}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(BackofficeError)
async def backoffice_error_handler(request: Request, exc: BackofficeError):
    """Domain errors -> status code + uniform envelope."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return _error_response(request, exc.status_code, exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Store failures that escaped the services."""
    logger.exception(f"Database error on {request.method} {request.url.path}")
    error = PersistenceError()
    return _error_response(request, error.status_code, error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(
        request,
        exc.status_code,
        {"success": False, "error": exc.detail, "type": "HTTPException"},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(
        request,
        500,
        {"success": False, "error": "Internal server error", "type": type(exc).__name__},
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        },
        "jobs": get_job_status(),
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await with_timeout(session.execute(text("SELECT 1")), seconds=5)
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except (SQLAlchemyError, BackofficeError, OSError) as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
