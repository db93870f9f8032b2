"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from portal.auth import get_platform
from portal.config import settings
from portal.exception_handlers import register_exception_handlers
from portal.repositories.catalog import CatalogRepository
from portal.routes import appointments, catalog, dashboard, history, profile, session
from portal.schemas.catalog import HomepageResponse
from portal.services.platform import PlatformClient
from portal.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

CLINIC_NAME = "OrthoCare Clinic"
CLINIC_TAGLINE = "Expert orthopedic care for bones, joints and movement"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup/shutdown."""
    # Startup: restore the session before serving any view
    platform = await PlatformClient.create()
    manager = SessionManager(platform)
    app.state.platform = platform
    app.state.session_manager = manager
    app.state.api_token = None

    snapshot = await manager.initialize()
    logger.info(f"Session manager ready ({snapshot.status.value})")

    yield  # Application runs here

    # Shutdown: session state is not persisted by the manager
    await manager.close()
    await platform.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Permissions policy (restrict sensitive APIs)
        response.headers["Permissions-Policy"] = (
            "geolocation=(), microphone=(), camera=()"
        )
        return response


app = FastAPI(
    title="OrthoPortal",
    description="Patient portal for an orthopedic clinic - appointments, profile and medical history",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Security headers middleware (applied to all responses)
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware for frontend
# Parse comma-separated origins from config
_cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

register_exception_handlers(app)

# Include API routers
app.include_router(session.router, prefix="/api")
app.include_router(profile.router, prefix="/api")
app.include_router(catalog.router, prefix="/api")
app.include_router(appointments.router, prefix="/api")
app.include_router(history.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/", response_model=HomepageResponse)
async def homepage(platform: PlatformClient = Depends(get_platform)) -> HomepageResponse:
    """Homepage content: clinic info with its services and doctors."""
    repo = CatalogRepository(platform)
    return HomepageResponse(
        name=CLINIC_NAME,
        tagline=CLINIC_TAGLINE,
        services=await repo.list_services(),
        doctors=await repo.list_doctors(),
    )
