"""
Face ID API server.

Builds the FastAPI app: registration and login under /face-id, session
endpoints under /auth, profile management, and /health for liveness checks.

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000 --reload

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import Service
from api.routes import (
    authentication_router,
    enrollment_router,
    management_router,
    session_router,
)
from api.schemas import HealthResponse
from core.config import get_api_config, get_server_config
from core.errors import StorageError
from core.orchestrator import get_service, set_service


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the profile store on startup and close it on shutdown."""
    service = get_service()
    try:
        stats = service.get_stats()
        logger.info(
            f"Face ID API starting: {stats['active_profiles']} active profiles "
            f"for {stats['total_owners']} owners"
        )
    except StorageError as e:
        logger.error(f"Profile store unavailable at startup: {e}")

    yield

    logger.info("Face ID API stopping, closing storage")
    set_service(None)


app = FastAPI(
    title="Face ID Authentication API",
    description="""
Passwordless sign-in with client-computed face descriptors.

## Features
- **Registration**: Bind a face descriptor to the signed-in account
- **Login**: Identify a user from a descriptor and receive a session credential
- **Sessions**: Inspect, refresh and log out credentials
- **Profiles**: List and deactivate Face ID profiles per device
    """,
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_api_config().get("cors_origins", []),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(enrollment_router)
app.include_router(authentication_router)
app.include_router(session_router)
app.include_router(management_router)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    # Routes map the storage failures they expect; this covers the rest
    logger.error(f"Unhandled storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable"},
    )


@app.get("/health", response_model=HealthResponse, tags=["system"])
def health_check(service: Service):
    """
    Check the health of the API and its profile storage.

    Reports "unhealthy" (still HTTP 200) when the store cannot be read.
    """
    try:
        active = service.store.count_active()
    except StorageError as e:
        logger.warning(f"Health check: storage unavailable: {e}")
        return HealthResponse(status="unhealthy", storage_available=False, active_profiles=0)

    return HealthResponse(status="healthy", storage_available=True, active_profiles=active)


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Face ID Authentication API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    server = get_server_config()

    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        reload=True,
        log_level="info",
    )
