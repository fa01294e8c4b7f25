"""
CMS Check-ins Router - Gate scanner for entry/exit QR codes
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.dependencies import get_checkin_protocol
from app.middleware import require_admin
from app.services.checkins import CheckInProtocol

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkins", tags=["CMS - Check-ins"])


# ============== Request Models ==============

class ScanQRRequest(BaseModel):
    qr_data: str = Field(..., min_length=1, max_length=2048)


# ============== Endpoints ==============

@router.post("/scan")
def scan_qr(
    request: ScanQRRequest,
    auth: dict = Depends(require_admin),
    protocol: CheckInProtocol = Depends(get_checkin_protocol),
):
    """Redeem a member's entry or exit QR code at the gate"""
    check_in = protocol.scan(request.qr_data)

    data = check_in.model_dump(mode="json")
    data["is_open"] = check_in.is_open

    return {
        "success": True,
        "message": "Check-in recorded" if check_in.is_open else "Check-out recorded",
        "data": data,
    }
