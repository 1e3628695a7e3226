from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.backend import BackendError, SupabaseBackend


logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create the shared backend client (one connection pool per process)

    Shutdown:
    - Close the backend client
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if not settings.SUPABASE_URL:
        logger.warning("SUPABASE_URL is not set; backend calls will fail")

    # A backend installed before startup (a test double) is left in place
    owns_backend = getattr(app.state, "backend", None) is None
    if owns_backend:
        app.state.backend = SupabaseBackend.from_settings(settings)

    yield

    if owns_backend:
        await app.state.backend.aclose()
        app.state.backend = None
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Invoices", "description": "GST sales invoices: drafts, issue, cancel, print"},
    {"name": "Final Settlements", "description": "Employee exit settlements: earnings, deductions, finalize"},
    {"name": "Calculators", "description": "Stateless GST line and settlement net calculators"},
]

FULL_API_DESCRIPTION = """
## GST Invoicing API

Invoice and final settlement workflows over a managed backend. Persistence,
row-level security and authoritative totals live in backend stored
procedures; this service validates input, orchestrates the remote calls and
computes display amounts.

### GST rules

| Supply | Split |
|--------|-------|
| Intra-state | CGST + SGST (SGST takes the odd cent) |
| Inter-state | IGST |

Amounts are rounded half away from zero to 2 decimals after every step.

### Authentication

All `/api/v1` endpoints require the auth provider's access token.
Include token in Authorization header: `Bearer <token>`

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Invalid status transition or line data |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - No company membership or insufficient role |
| 404 | Not Found - Resource doesn't exist |
| 422 | Unprocessable Entity - Validation failed |
| 502 | Bad Gateway - Backend call failed |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
    swagger_ui_parameters={
        "deepLinking": True,
        "persistAuthorization": True,
        "filter": True,
    },
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


def _error_response(request: Request, status_code: int, exc: Exception, message) -> JSONResponse:
    error_detail = {
        "error": message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    response = JSONResponse(status_code=status_code, content=error_detail)

    # Add CORS headers if origin is allowed
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"

    return response


@app.exception_handler(BackendError)
async def backend_exception_handler(request: Request, exc: BackendError):
    """Backend failures that escaped an endpoint surface as 502."""
    logger.error(f"Unhandled backend error on {request.method} {request.url.path}: {exc.message}")
    return _error_response(request, 502, exc, exc.message)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(request, 500, exc, str(exc))


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with backend configuration check."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "backend": "configured" if settings.SUPABASE_URL else "not configured"
        }
    }

    if not settings.SUPABASE_URL:
        health_status["status"] = "unhealthy"
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
