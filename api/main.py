"""
AgencyDesk FastAPI Backend.

Main application entry point.
Run with: uvicorn api.main:app --reload --port 8000
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from agencydesk.config import load_config_from_dotenv
from agencydesk.import_service import ClientImportError
from agencydesk.supabase_client import configure
from .routers import clients, imports

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Configuration is read once; routers reach it through agencydesk.supabase_client
config = load_config_from_dotenv()
configure(config)

logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

# Logger for startup info
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    # === STARTUP ===
    logger.info("=" * 60)
    logger.info("AgencyDesk API starting up...")
    logger.info(f"Supabase URL: {config.supabase_url}")
    logger.info(f"Clients table: {config.clients_table}")
    logger.info(f"Allowed origins: {', '.join(config.allowed_origins)}")
    logger.info("=" * 60)

    yield

    # === SHUTDOWN ===
    logger.info("AgencyDesk API shutting down...")


app = FastAPI(
    title="AgencyDesk API",
    description="Backend API for the agency dashboard: clients and CSV imports",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach limiter to app state (required by SlowAPI)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ClientImportError)
async def client_import_error_handler(request: Request, exc: ClientImportError):
    """Render import failures as {error, details?} with the carried status."""
    body = {"error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


IMPORT_ROUTES_PREFIX = "/api/clients/import-csv"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Import routes answer malformed bodies with {error, details}; others keep FastAPI's 422."""
    if not request.url.path.startswith(IMPORT_ROUTES_PREFIX):
        return await request_validation_exception_handler(request, exc)

    details = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body") or "body"
        details.append(f"{field}: {err.get('msg')}")
    return JSONResponse(status_code=400, content={"error": "Requête invalide", "details": details})


# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# Include API routers
# Imports first: its fixed paths must win over /api/clients/{client_id}
app.include_router(imports.router, prefix="/api/clients", tags=["Client Imports"])
app.include_router(clients.router, prefix="/api/clients", tags=["Clients"])


@app.get("/health")
async def health():
    """Health check for monitoring."""
    return {"status": "healthy"}
