import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from shortlink_app.config import settings
from shortlink_app.dependencies import get_store
from shortlink_app.exceptions import (
    CodeExhaustionError,
    CommitConflictError,
    InvalidUrlError,
    LinkNotFoundError,
    ShortLinkError,
    StoreUnavailableError,
)
from shortlink_app.logging_config import setup_logging
from shortlink_app.api.v1 import links, owners, redirect

logger = logging.getLogger("shortlink_app.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Open the process-wide store once and close it on shutdown.

    A store that cannot be reached aborts startup; there is no degraded mode.
    """
    setup_logging(settings.log_level)
    store = app.dependency_overrides.get(get_store, get_store)()
    if not await store.ping():
        raise StoreUnavailableError(f"Key-value store '{settings.store_backend}' is unreachable")
    logger.info("%s %s started (store=%s)", settings.app_name, settings.app_version, settings.store_backend)
    try:
        yield
    finally:
        await store.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="A URL shortener service built on a transactional key-value store",
    debug=settings.debug,
    lifespan=lifespan,
)


_ERROR_STATUS = {
    InvalidUrlError: status.HTTP_400_BAD_REQUEST,
    LinkNotFoundError: status.HTTP_404_NOT_FOUND,
    CommitConflictError: status.HTTP_409_CONFLICT,
    CodeExhaustionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(ShortLinkError)
async def short_link_error_handler(request: Request, exc: ShortLinkError):
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}




######## Include routers
app.include_router(links.router, prefix="/api/v1")
app.include_router(owners.router, prefix="/api/v1")
app.include_router(redirect.router)
