import os
from contextlib import asynccontextmanager
from typing import List, Optional, Sequence

import structlog
import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from sentinel import __version__, config
from sentinel.core.exceptions import (
    AlgorithmMismatchError,
    AssetNotFoundError,
    ImageDecodeError,
    InvalidHashError,
    PersistenceError,
    ScanInProgressError,
    SentinelError,
)
from sentinel.core.repository import Stores, create_stores
from sentinel.core.utils import configure_logging, is_image_file
from sentinel.models.api import (
    AlertListResponse,
    CompareRequest,
    ErrorResponse,
    HealthResponse,
    MonitoringToggle,
    SearchRequest,
)
from sentinel.models.fingerprint import FingerprintSet, HashComparison, ProtectedAsset, RegistrationResult, VaultMatch, VaultRecord
from sentinel.models.monitoring import MonitoringSession, MonitoringTarget
from sentinel.services.crawler import Crawler, create_crawler
from sentinel.services.image_hash import hash_image
from sentinel.services.monitoring import ScanOrchestrator
from sentinel.services.registration import AssetRegistry
from sentinel.services.similarity import MatchPolicy, compare_hashes

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
configure_logging(DEBUG)

logger = structlog.get_logger()

SUPPORTED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp", "image/bmp", "image/tiff"}

ERROR_STATUS = {
    ImageDecodeError: 422,
    InvalidHashError: status.HTTP_400_BAD_REQUEST,
    AlgorithmMismatchError: status.HTTP_400_BAD_REQUEST,
    AssetNotFoundError: status.HTTP_404_NOT_FOUND,
    ScanInProgressError: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Sentinel API", store_backend=config.STORE_BACKEND, crawler_backend=config.CRAWLER_BACKEND)
    if config.STORE_BACKEND == "postgres":
        from sentinel.core.database import check_database_connection, create_schema
        if check_database_connection():
            create_schema()
            logger.info("Database connection verified")
        else:
            logger.warning("Database connection check failed")

    yield

    logger.info("Shutting down Sentinel API")


async def _read_image_upload(file: UploadFile) -> bytes:
    """Validate an uploaded image and return its bytes."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

    if file.content_type and file.content_type != "application/octet-stream":
        if file.content_type not in SUPPORTED_IMAGE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail=f"Unsupported media type: {file.content_type}"
            )
    elif not is_image_file(file.filename):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported file extension: {file.filename}"
        )

    data = await file.read()
    if len(data) > config.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size exceeds maximum allowed size of {config.MAX_FILE_SIZE} bytes"
        )
    return data


def create_app(stores: Optional[Stores] = None,
               crawler: Optional[Crawler] = None,
               targets: Optional[Sequence[MonitoringTarget]] = None,
               policy: Optional[MatchPolicy] = None) -> FastAPI:
    """Build the API around the given stores and crawler (configured defaults otherwise)."""
    stores = stores or create_stores()
    policy = policy or MatchPolicy()
    registry = AssetRegistry(stores.vault, stores.alerts, policy)
    orchestrator = ScanOrchestrator(stores.vault, stores.alerts, stores.history,
                                    crawler or create_crawler(), targets)

    app = FastAPI(
        title="Sentinel API",
        description="Perceptual fingerprint matching and continuous monitoring for protected images",
        version=__version__,
        lifespan=lifespan,
        responses={
            422: {"model": ErrorResponse, "description": "Validation Error"},
            500: {"model": ErrorResponse, "description": "Internal Server Error"},
        }
    )

    @app.exception_handler(SentinelError)
    async def sentinel_error_handler(request: Request, exc: SentinelError):
        status_code = next(
            (code for exc_type, code in ERROR_STATUS.items() if isinstance(exc, exc_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        logger.warning("Request failed",
                       url=str(request.url), method=request.method,
                       error_type=type(exc).__name__, error=str(exc))
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=type(exc).__name__, message=str(exc)).model_dump()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception",
                     url=str(request.url), method=request.method, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal_server_error", "message": "An unexpected error occurred"}
        )

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Sentinel API",
            "version": __version__,
            "docs_url": "/docs",
            "health_url": "/health",
            "store_backend": config.STORE_BACKEND,
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint with component status."""
        components = {
            "store_backend": config.STORE_BACKEND,
            "crawler": type(orchestrator.crawler).__name__,
            "thresholds": policy.as_dict(),
            "scan_running": orchestrator.is_running,
        }
        healthy = True
        if config.STORE_BACKEND == "postgres":
            from sentinel.core.database import check_database_connection
            healthy = check_database_connection()
            components["database"] = "healthy" if healthy else "unhealthy"

        return HealthResponse(
            status="healthy" if healthy else "degraded",
            version=__version__,
            components=components,
        )

    @app.post("/assets", response_model=RegistrationResult, status_code=status.HTTP_201_CREATED)
    async def register_asset(
        file: UploadFile = File(..., description="Image to protect"),
        description: Optional[str] = Form(None),
    ):
        """Hash an image and add it to the fingerprint vault for monitoring."""
        data = await _read_image_upload(file)
        logger.info("Processing asset registration", filename=file.filename, size=len(data))
        return await run_in_threadpool(registry.register, data, file.filename, description)

    @app.get("/assets", response_model=List[ProtectedAsset])
    async def list_assets():
        return stores.vault.list_assets()

    @app.get("/assets/{asset_id}", response_model=ProtectedAsset)
    async def get_asset(asset_id: str):
        return registry.get(asset_id)

    @app.patch("/assets/{asset_id}/monitoring", response_model=ProtectedAsset)
    async def toggle_monitoring(asset_id: str, body: MonitoringToggle):
        return registry.set_monitoring(asset_id, body.enabled)

    @app.delete("/assets/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_asset(asset_id: str):
        registry.remove(asset_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/hashes", response_model=FingerprintSet)
    async def hash_upload(file: UploadFile = File(..., description="Image to fingerprint")):
        """Compute aHash, dHash and pHash without registering the image."""
        data = await _read_image_upload(file)
        return await run_in_threadpool(hash_image, data)

    @app.post("/hashes/compare", response_model=HashComparison)
    async def compare(body: CompareRequest):
        threshold = policy.threshold_for(body.algorithm, body.threshold)
        return compare_hashes(body.hash1, body.hash2, threshold)

    @app.get("/vault", response_model=List[VaultRecord])
    async def list_vault():
        return stores.vault.all()

    @app.post("/vault/search", response_model=List[VaultMatch])
    async def search_vault(body: SearchRequest):
        threshold = policy.threshold_for(body.algorithm, body.threshold)
        return stores.vault.search_matches(body.hash, body.algorithm, threshold)

    @app.get("/targets", response_model=List[MonitoringTarget])
    async def list_targets():
        return orchestrator.targets

    @app.post("/scans", response_model=MonitoringSession)
    async def run_scan():
        """Run one monitoring scan over all enabled assets and targets."""
        return await orchestrator.run()

    @app.get("/scans", response_model=List[MonitoringSession])
    async def scan_history(limit: Optional[int] = Query(default=None, ge=1, le=config.SCAN_HISTORY_CAPACITY)):
        return stores.history.list(limit)

    @app.get("/alerts", response_model=AlertListResponse)
    async def list_alerts(limit: Optional[int] = Query(default=None, ge=1, le=config.ALERT_CAPACITY)):
        return AlertListResponse(alerts=stores.alerts.list(limit), unread_count=stores.alerts.unread_count())

    @app.post("/alerts/{alert_id}/read", status_code=status.HTTP_204_NO_CONTENT)
    async def mark_alert_read(alert_id: str):
        if not stores.alerts.mark_read(alert_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown alert: {alert_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/alerts", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_alerts():
        stores.alerts.clear_all()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "sentinel.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=DEBUG,
        log_config=None,  # We handle logging with structlog
    )
