from __future__ import annotations

import base64
import json

import httpx
import pytest
from sqlalchemy import select

from receipt_intake.core.db import SessionLocal
from receipt_intake.modules.extraction.gateway import (
    DispatchFailure,
    ExtractionGateway,
    classify_status,
)
from receipt_intake.modules.receipts.models import Receipt, ReceiptStatus
from receipt_intake.modules.receipts.service import create_receipt

IMAGE = b"\x89PNG\r\n\x1a\nfake-image-bytes"
CALLBACK = "http://testserver/api/receipts/webhook-callback"


def _gateway(handler, *, default_url="http://extractor.example.com/hook") -> ExtractionGateway:
    return ExtractionGateway(
        default_url=default_url, timeout_s=5, transport=httpx.MockTransport(handler)
    )


def _new_receipt(session) -> Receipt:
    return create_receipt(
        session,
        owner_id=None,
        image_key="receipts/test.png",
        filename="test.png",
        content_type="image/png",
        byte_size=len(IMAGE),
    )


def _send(gateway: ExtractionGateway):
    return gateway.send(
        receipt_id=7,
        body=IMAGE,
        content_type="image/png",
        filename="struk.png",
        callback_url=CALLBACK,
        target_url="http://extractor.example.com/hook",
    )


def test_send_posts_receipt_payload_and_accepts_2xx():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202, json={"queued": True})

    result = _send(_gateway(handler))

    assert result.ok
    assert result.error_message is None
    assert len(seen) == 1
    payload = json.loads(seen[0].content)
    assert payload["receipt_id"] == 7
    assert base64.b64decode(payload["image_base64"]) == IMAGE
    assert payload["mime_type"] == "image/png"
    assert payload["filename"] == "struk.png"
    assert payload["callback_url"] == CALLBACK


@pytest.mark.parametrize(
    ("status_code", "failure", "wording"),
    [
        (400, DispatchFailure.REJECTED, "rejected"),
        (404, DispatchFailure.REJECTED, "rejected"),
        (500, DispatchFailure.UPSTREAM_ERROR, "internal server error"),
        (503, DispatchFailure.UPSTREAM_ERROR, "internal server error"),
    ],
)
def test_send_classifies_http_failures(status_code, failure, wording):
    result = _send(_gateway(lambda _req: httpx.Response(status_code, text="nope")))

    assert result.failure is failure
    assert result.status_code == status_code
    assert wording in (result.error_message or "")
    assert str(status_code) in (result.error_message or "")


@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout],
)
def test_send_maps_transport_errors_to_unreachable(error):
    def handler(request: httpx.Request) -> httpx.Response:
        raise error("boom", request=request)

    result = _send(_gateway(handler))

    assert result.failure is DispatchFailure.UNREACHABLE
    assert "Could not reach" in (result.error_message or "")


def test_classify_status_boundaries():
    assert classify_status(200) is None
    assert classify_status(299) is None
    assert classify_status(304) is DispatchFailure.REJECTED
    assert classify_status(499) is DispatchFailure.REJECTED
    assert classify_status(500) is DispatchFailure.UPSTREAM_ERROR


def test_failure_messages_are_distinct_per_kind():
    messages = {kind.describe(502) for kind in DispatchFailure}
    assert len(messages) == len(DispatchFailure)


def test_resolve_target_prefers_override():
    gateway = ExtractionGateway(default_url="http://default.example.com/hook")
    assert gateway.resolve_target("http://override.example.com/hook") == (
        "http://override.example.com/hook"
    )
    assert gateway.resolve_target(None) == "http://default.example.com/hook"
    assert ExtractionGateway(default_url="").resolve_target(None) is None


def test_dispatch_without_target_fails_receipt_without_network_call():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    gateway = _gateway(handler, default_url=None)
    with SessionLocal() as session:
        receipt = _new_receipt(session)
        result = gateway.dispatch(
            session,
            receipt,
            body=IMAGE,
            content_type="image/png",
            filename="test.png",
            callback_url=CALLBACK,
            target_url=gateway.resolve_target(None),
        )
        session.refresh(receipt)

        assert result.failure is DispatchFailure.CONFIGURATION_MISSING
        assert calls == []
        assert receipt.status == ReceiptStatus.FAILED
        assert receipt.error_message == DispatchFailure.CONFIGURATION_MISSING.describe()


def test_dispatch_success_leaves_receipt_processing():
    gateway = _gateway(lambda _req: httpx.Response(200))
    with SessionLocal() as session:
        receipt = _new_receipt(session)
        result = gateway.dispatch(
            session,
            receipt,
            body=IMAGE,
            content_type="image/png",
            filename="test.png",
            callback_url=CALLBACK,
            target_url=gateway.resolve_target(None),
        )
        session.expire_all()
        row = session.scalar(select(Receipt).where(Receipt.id == receipt.id))

        assert result.ok
        assert row.status == ReceiptStatus.PROCESSING
        assert row.error_message is None


def test_dispatch_failure_does_not_touch_already_resolved_receipt():
    gateway = _gateway(lambda _req: httpx.Response(503))
    with SessionLocal() as session:
        receipt = _new_receipt(session)
        receipt.status = ReceiptStatus.COMPLETED
        session.add(receipt)
        session.commit()

        result = gateway.dispatch(
            session,
            receipt,
            body=IMAGE,
            content_type="image/png",
            filename="test.png",
            callback_url=CALLBACK,
            target_url=gateway.resolve_target(None),
        )
        session.refresh(receipt)

        assert result.failure is DispatchFailure.UPSTREAM_ERROR
        assert receipt.status == ReceiptStatus.COMPLETED
        assert receipt.error_message is None
