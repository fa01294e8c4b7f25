import logging

from fastapi import APIRouter, Depends

from app.config import APP_NAME
from app.store import BookingStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check():
    """Liveness check"""
    return {"status": "healthy", "message": f"{APP_NAME} is running"}


@router.get("/health/ready")
def readiness_check(store: BookingStore = Depends(get_store)):
    """Readiness check: the store must answer. Raises StoreUnavailable (503) otherwise."""
    store.ping()
    return {"status": "ready", "database": "ok"}
