"""Unauthenticated health endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from wabridge.api.deps import get_store
from wabridge.errors import AppError
from wabridge.infra.store import Store
from wabridge.observability.logging import get_logger

router = APIRouter(tags=["health"])

logger = get_logger(__name__)


@router.get("/health")
def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}


@router.get("/health/ready")
def ready(store: Store = Depends(get_store)) -> JSONResponse:
    """Readiness check: 503 while storage is unreachable."""
    try:
        with store.transaction() as session:
            session.ping()
    except AppError as exc:
        logger.warning("readiness check failed", extra={"extra_fields": {"code": exc.code}})
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(status_code=200, content={"status": "ready"})
