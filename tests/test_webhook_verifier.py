import base64
import json
import logging
import time

import pytest

from app.config.settings import settings
from app.core.errors import InvalidSignatureError
from app.modules.webhooks.schemas import UserCreatedEvent, UserDeletedEvent, UnhandledEvent
from app.modules.webhooks.verifier import verify_webhook, sign_payload

SECRET = settings.clerk_webhook_signing_secret


def test_valid_user_created_delivery(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data(), msg_id="msg_abc")

    event = verify_webhook(headers, body, SECRET)

    assert isinstance(event, UserCreatedEvent)
    assert event.delivery_id == "msg_abc"
    assert event.data.id == "user_new"
    assert event.data.primary_email.email_address == "ada@example.com"
    assert event.data.primary_email.is_verified is True


def test_user_deleted_carries_only_the_id(signed_webhook):
    headers, body = signed_webhook("user.deleted", {"id": "user_gone", "deleted": True, "object": "user"})

    event = verify_webhook(headers, body, SECRET)

    assert isinstance(event, UserDeletedEvent)
    assert event.data.id == "user_gone"


def test_unknown_event_type_is_unhandled_not_an_error(signed_webhook):
    headers, body = signed_webhook("session.created", {"id": "sess_1"})

    event = verify_webhook(headers, body, SECRET)

    assert isinstance(event, UnhandledEvent)
    assert event.type == "session.created"
    assert event.data == {"id": "sess_1"}


def test_header_names_are_case_insensitive(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data())
    upper = {k.upper(): v for k, v in headers.items()}

    assert isinstance(verify_webhook(upper, body, SECRET), UserCreatedEvent)


def test_tampered_body_is_rejected(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data())
    tampered = body.replace(b"ada@example.com", b"eve@example.com")

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, tampered, SECRET)


@pytest.mark.parametrize("missing", ["svix-id", "svix-timestamp", "svix-signature"])
def test_missing_header_is_rejected(signed_webhook, clerk_user_data, missing):
    headers, body = signed_webhook("user.created", clerk_user_data())
    del headers[missing]

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, body, SECRET)


def test_stale_timestamp_is_rejected(signed_webhook, clerk_user_data):
    now = time.time()
    headers, body = signed_webhook("user.created", clerk_user_data(), timestamp=int(now) - 301)

    with pytest.raises(InvalidSignatureError, match="too old"):
        verify_webhook(headers, body, SECRET, now=now)


def test_future_timestamp_is_rejected(signed_webhook, clerk_user_data):
    now = time.time()
    headers, body = signed_webhook("user.created", clerk_user_data(), timestamp=int(now) + 301)

    with pytest.raises(InvalidSignatureError, match="too new"):
        verify_webhook(headers, body, SECRET, now=now)


def test_timestamp_inside_tolerance_is_accepted(signed_webhook, clerk_user_data):
    now = time.time()
    headers, body = signed_webhook("user.created", clerk_user_data(), timestamp=int(now) - 299)

    assert isinstance(verify_webhook(headers, body, SECRET, now=now), UserCreatedEvent)


def test_non_numeric_timestamp_is_rejected(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data())
    headers["svix-timestamp"] = "yesterday"

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, body, SECRET)


def test_any_matching_signature_accepts(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data())
    valid = headers["svix-signature"]
    headers["svix-signature"] = f"v1,bm90LXRoZS1zaWduYXR1cmU= v2,whatever {valid}"

    assert isinstance(verify_webhook(headers, body, SECRET), UserCreatedEvent)


def test_signature_from_another_secret_is_rejected(signed_webhook, clerk_user_data):
    other_secret = "whsec_" + base64.b64encode(b"some-other-signing-secret-99999").decode()
    headers, body = signed_webhook("user.created", clerk_user_data(), secret=other_secret)

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, body, SECRET)


def test_malformed_secret_is_rejected(signed_webhook, clerk_user_data):
    headers, body = signed_webhook("user.created", clerk_user_data())

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, body, "whsec_not*base64")


def test_signed_non_json_body_is_rejected():
    body = b"not json"
    timestamp = int(time.time())
    headers = {
        "svix-id": "msg_1",
        "svix-timestamp": str(timestamp),
        "svix-signature": "v1," + sign_payload(SECRET, "msg_1", timestamp, body),
    }

    with pytest.raises(InvalidSignatureError):
        verify_webhook(headers, body, SECRET)


def test_signed_user_event_without_id_is_unhandled(caplog):
    body = json.dumps({"type": "user.created", "data": {"first_name": "Ada"}}).encode()
    timestamp = int(time.time())
    headers = {
        "svix-id": "msg_2",
        "svix-timestamp": str(timestamp),
        "svix-signature": "v1," + sign_payload(SECRET, "msg_2", timestamp, body),
    }

    with caplog.at_level(logging.WARNING):
        event = verify_webhook(headers, body, SECRET)

    assert isinstance(event, UnhandledEvent)
    assert (event.type, event.delivery_id) == ("user.created", "msg_2")
    assert "Malformed user.created payload" in caplog.text


def test_primary_email_follows_primary_email_address_id(signed_webhook, clerk_user_data):
    data = clerk_user_data()
    data["email_addresses"] = [
        {"id": "idn_old", "email_address": "old@example.com", "verification": None},
        {"id": "idn_main", "email_address": "main@example.com", "verification": {"status": "verified"}},
    ]
    data["primary_email_address_id"] = "idn_main"
    headers, body = signed_webhook("user.updated", data)

    event = verify_webhook(headers, body, SECRET)

    assert event.data.primary_email.email_address == "main@example.com"
