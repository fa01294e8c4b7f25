"""
QR Token Codec
Encodes, parses and validates the short-lived entry/exit/reward tokens shown
as QR codes in the member app.

Wire format (compact JSON):
    {"userId": "...", "timestamp": 1731234567890, "action": "entry", "sessionId": "...", "sig": "..."}

``sessionId`` is an optional uniqueness salt; ``sig`` is an optional
HMAC-SHA256 over the other fields. Tokens are never stored: validity is the
structure, the signature (when required) and the age.
"""
import base64
import hashlib
import hmac
import json
import logging
from io import BytesIO
from typing import Optional, Union

import qrcode
from pydantic import BaseModel

from app.config import QR_SIGNING_REQUIRED, QR_SIGNING_SECRET, QR_TOKEN_MAX_AGE_MS
from app.models import QRAction
from app.utils.helpers import to_epoch_ms, utc_now

logger = logging.getLogger(__name__)


class QRToken(BaseModel):
    user_id: str
    timestamp: int
    action: QRAction
    session_id: Optional[str] = None
    signature: Optional[str] = None

    @property
    def salt(self) -> str:
        return self.session_id or ""


def _signing_input(user_id: str, timestamp: int, action: str, session_id: Optional[str]) -> bytes:
    return f"{user_id}|{timestamp}|{action}|{session_id or ''}".encode("utf-8")


def sign(token: QRToken, secret: str = QR_SIGNING_SECRET) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        _signing_input(token.user_id, token.timestamp, token.action.value, token.session_id),
        hashlib.sha256,
    )
    return digest.hexdigest()


def issue(
    user_id: str,
    action: Union[QRAction, str],
    session_salt: Optional[str] = None,
    now_ms: Optional[int] = None,
    secret: Optional[str] = QR_SIGNING_SECRET,
) -> QRToken:
    """
    Create a token for ``user_id``. Signed when ``secret`` is set.
    """
    token = QRToken(
        user_id=user_id,
        timestamp=now_ms if now_ms is not None else to_epoch_ms(utc_now()),
        action=QRAction(action),
        session_id=session_salt,
    )
    if secret:
        token.signature = sign(token, secret)
    return token


def encode(token: QRToken) -> str:
    payload = {
        "userId": token.user_id,
        "timestamp": token.timestamp,
        "action": token.action.value,
    }
    if token.session_id is not None:
        payload["sessionId"] = token.session_id
    if token.signature is not None:
        payload["sig"] = token.signature
    return json.dumps(payload, separators=(",", ":"))


def parse(
    raw: Union[str, bytes],
    secret: Optional[str] = QR_SIGNING_SECRET,
    require_signature: bool = QR_SIGNING_REQUIRED,
) -> Optional[QRToken]:
    """
    Decode scanned or typed token text.

    Fails closed: returns None for anything that is not a complete, well-typed
    payload with a known action, and for any signature that does not verify.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    try:
        data = json.loads(raw.strip())
    except (ValueError, AttributeError):
        return None

    if not isinstance(data, dict):
        return None

    user_id = data.get("userId")
    timestamp = data.get("timestamp")
    action = data.get("action")
    session_id = data.get("sessionId")
    signature = data.get("sig")

    if not isinstance(user_id, str) or not user_id:
        return None
    # bool is an int subclass
    if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
        return None
    if action not in {a.value for a in QRAction}:
        return None
    if session_id is not None and not isinstance(session_id, str):
        return None
    if signature is not None and not isinstance(signature, str):
        return None

    token = QRToken(
        user_id=user_id,
        timestamp=timestamp,
        action=QRAction(action),
        session_id=session_id,
        signature=signature,
    )

    if signature is None:
        if require_signature:
            logger.warning(f"Rejected unsigned QR token for user {user_id}")
            return None
    elif secret and not hmac.compare_digest(signature, sign(token, secret)):
        logger.warning(f"Rejected QR token with bad signature for user {user_id}")
        return None

    return token


def is_live(token: QRToken, max_age_ms: int = QR_TOKEN_MAX_AGE_MS, now_ms: Optional[int] = None) -> bool:
    if now_ms is None:
        now_ms = to_epoch_ms(utc_now())
    return (now_ms - token.timestamp) < max_age_ms


def render_png_base64(text: str, box_size: int = 10, border: int = 2) -> str:
    """Render token text as a base64-encoded PNG QR code."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("utf-8")
