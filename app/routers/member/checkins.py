"""
Member Check-ins Router - Entry/exit QR codes and visit history
"""
import logging
from typing import Callable

from fastapi import APIRouter, HTTPException, status, Depends, Query

from app.config import QR_TOKEN_MAX_AGE_MS
from app.dependencies import get_clock
from app.middleware import verify_bearer_token
from app.models import QRAction
from app.store import BookingStore, get_store
from app.utils import qr_token
from app.utils.helpers import from_epoch_ms, to_epoch_ms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkins", tags=["Member - Check-ins"])

GATE_ACTIONS = {QRAction.ENTRY.value, QRAction.EXIT.value}


def build_qr_payload(token: qr_token.QRToken, include_image: bool = True) -> dict:
    """Response body shared by every QR-issuing endpoint."""
    text = qr_token.encode(token)
    data = {
        "qr_data": text,
        "action": token.action.value,
        "issued_at": from_epoch_ms(token.timestamp).isoformat(),
        "expires_at": from_epoch_ms(token.timestamp + QR_TOKEN_MAX_AGE_MS).isoformat(),
        "expires_in_seconds": QR_TOKEN_MAX_AGE_MS // 1000,
    }
    if include_image:
        data["qr_image"] = qr_token.render_png_base64(text)
    return data


# ============== Endpoints ==============

@router.get("/qr/{action}")
def get_gate_qr(
    action: str,
    include_image: bool = Query(True),
    auth: dict = Depends(verify_bearer_token),
    clock: Callable = Depends(get_clock),
):
    """Generate a short-lived entry or exit QR code for the caller"""
    if action not in GATE_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "INVALID_ACTION",
                "message": "Action must be 'entry' or 'exit'",
            },
        )

    token = qr_token.issue(auth["user_id"], action, now_ms=to_epoch_ms(clock()))
    return {"success": True, "data": build_qr_payload(token, include_image)}


@router.get("/history")
def get_checkin_history(
    limit: int = Query(20, ge=1, le=100),
    auth: dict = Depends(verify_bearer_token),
    store: BookingStore = Depends(get_store),
):
    """Get the caller's check-in history, newest first"""
    check_ins = store.list_check_ins_since(auth["user_id"], None, limit=limit)

    data = []
    for check_in in check_ins:
        item = check_in.model_dump(mode="json")
        item["is_open"] = check_in.is_open
        data.append(item)

    return {"success": True, "data": data}
