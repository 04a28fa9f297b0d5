"""
Svix signature verification for Clerk webhooks.

A delivery is signed as base64(HMAC-SHA256(secret, "{svix-id}.{svix-timestamp}.{body}")).
The svix-signature header holds one or more space separated "v1,<signature>"
entries; any match accepts. Timestamps outside the tolerance window are
rejected to stop replays.
"""

from app.core.errors import InvalidSignatureError
from app.modules.webhooks.schemas import WebhookEvent, UnhandledEvent, EVENT_MODELS
from pydantic import ValidationError
from typing import Mapping, Optional
import base64
import binascii
import hashlib
import hmac
import json
import logging
import time

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1"
DEFAULT_TOLERANCE_SECONDS = 300


def _decode_secret(signing_secret: str) -> bytes:
    if not signing_secret:
        raise InvalidSignatureError("Webhook signing secret is not configured")
    raw = signing_secret[len(SECRET_PREFIX):] if signing_secret.startswith(SECRET_PREFIX) else signing_secret
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSignatureError("Webhook signing secret is not valid base64") from e


def sign_payload(signing_secret: str, msg_id: str, timestamp: int, body: bytes) -> str:
    """Compute the v1 signature for a delivery (also used to build test deliveries)."""
    key = _decode_secret(signing_secret)
    signed_content = f"{msg_id}.{timestamp}.".encode() + body
    digest = hmac.new(key, signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook(
    headers: Mapping[str, str],
    body: bytes,
    signing_secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> WebhookEvent:
    """
    Verify a raw webhook delivery and parse it into a typed event.

    Raises InvalidSignatureError for missing headers, a stale or future
    timestamp, a signature mismatch or an unparseable body. A signed payload
    that does not fit its event model comes back as an UnhandledEvent.
    """
    normalized = {k.lower(): v for k, v in headers.items()}
    msg_id = normalized.get("svix-id")
    msg_timestamp = normalized.get("svix-timestamp")
    msg_signature = normalized.get("svix-signature")
    if not msg_id or not msg_timestamp or not msg_signature:
        raise InvalidSignatureError("Missing required webhook headers")

    try:
        timestamp = int(msg_timestamp)
    except ValueError as e:
        raise InvalidSignatureError("Invalid webhook timestamp") from e

    current = time.time() if now is None else now
    if timestamp < current - tolerance_seconds:
        raise InvalidSignatureError("Webhook timestamp too old")
    if timestamp > current + tolerance_seconds:
        raise InvalidSignatureError("Webhook timestamp too new")

    expected = sign_payload(signing_secret, msg_id, timestamp, body)
    for versioned in msg_signature.split(" "):
        version, _, signature = versioned.partition(",")
        if version != SIGNATURE_VERSION:
            continue
        if hmac.compare_digest(signature.encode(), expected.encode()):
            break
    else:
        raise InvalidSignatureError("No matching webhook signature found")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise InvalidSignatureError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise InvalidSignatureError("Webhook body has no event type")

    event_type = payload["type"]
    data = payload.get("data") or {}
    model = EVENT_MODELS.get(event_type)
    if model is None:
        return UnhandledEvent(type=event_type, delivery_id=msg_id, data=data if isinstance(data, dict) else {})
    try:
        return model(delivery_id=msg_id, data=data)
    except ValidationError as e:
        # Signed but malformed; acknowledged as unhandled
        logger.warning("Malformed %s payload in delivery %s: %s", event_type, msg_id, e)
        return UnhandledEvent(type=event_type, delivery_id=msg_id, data=data if isinstance(data, dict) else {})
