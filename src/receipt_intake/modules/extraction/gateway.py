from __future__ import annotations

import base64
import enum
import time
from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session

from receipt_intake.core.logging import get_logger, log_event, monotonic_ms
from receipt_intake.modules.receipts.models import Receipt
from receipt_intake.modules.receipts.service import mark_receipt_failed

logger = get_logger(__name__)

_BODY_LOG_LIMIT = 500


class DispatchFailure(str, enum.Enum):
    CONFIGURATION_MISSING = "configuration_missing"
    REJECTED = "rejected"
    UPSTREAM_ERROR = "upstream_error"
    UNREACHABLE = "unreachable"

    def describe(self, status_code: int | None = None) -> str:
        code = f" (HTTP {status_code})" if status_code else ""
        if self is DispatchFailure.CONFIGURATION_MISSING:
            return "Extraction webhook URL is not configured; the receipt was not sent."
        if self is DispatchFailure.REJECTED:
            return (
                f"The extraction service rejected the request{code}. "
                "Check the webhook configuration."
            )
        if self is DispatchFailure.UPSTREAM_ERROR:
            return (
                f"The extraction service hit an internal server error{code}. "
                "Check the extraction service logs."
            )
        return (
            "Could not reach the extraction service (timeout or connection error). "
            "Make sure it is running and the webhook URL is correct."
        )


@dataclass(frozen=True)
class DispatchResult:
    failure: DispatchFailure | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def error_message(self) -> str | None:
        return self.failure.describe(self.status_code) if self.failure else None


def classify_status(status_code: int) -> DispatchFailure | None:
    if 200 <= status_code < 300:
        return None
    if status_code >= 500:
        return DispatchFailure.UPSTREAM_ERROR
    return DispatchFailure.REJECTED


class ExtractionGateway:
    """Hands receipt images to the external extraction webhook.

    Only the acknowledgement is awaited here; the extracted fields come back
    later through the callback endpoint.
    """

    def __init__(
        self,
        *,
        default_url: str | None,
        timeout_s: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.default_url = default_url or None
        self.timeout_s = timeout_s
        self._transport = transport

    def resolve_target(self, override: str | None = None) -> str | None:
        return override or self.default_url

    def send(
        self,
        *,
        receipt_id: int,
        body: bytes,
        content_type: str | None,
        filename: str,
        callback_url: str,
        target_url: str,
    ) -> DispatchResult:
        payload = {
            "receipt_id": receipt_id,
            "image_base64": base64.b64encode(body).decode("ascii"),
            "mime_type": content_type,
            "filename": filename,
            "callback_url": callback_url,
        }
        start = time.monotonic()
        log_event(
            logger,
            "extraction.dispatch.start",
            receipt_id=receipt_id,
            target_url=target_url,
            byte_size=len(body),
        )
        try:
            with httpx.Client(
                timeout=self.timeout_s, follow_redirects=True, transport=self._transport
            ) as client:
                resp = client.post(target_url, json=payload)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            log_event(
                logger,
                "extraction.dispatch.failure",
                receipt_id=receipt_id,
                failure=DispatchFailure.UNREACHABLE.value,
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=monotonic_ms(start),
            )
            return DispatchResult(failure=DispatchFailure.UNREACHABLE)

        failure = classify_status(resp.status_code)
        if failure:
            log_event(
                logger,
                "extraction.dispatch.failure",
                receipt_id=receipt_id,
                failure=failure.value,
                status_code=resp.status_code,
                body=resp.text[:_BODY_LOG_LIMIT],
                duration_ms=monotonic_ms(start),
            )
            return DispatchResult(failure=failure, status_code=resp.status_code)

        log_event(
            logger,
            "extraction.dispatch.success",
            receipt_id=receipt_id,
            status_code=resp.status_code,
            duration_ms=monotonic_ms(start),
        )
        return DispatchResult(status_code=resp.status_code)

    def dispatch(
        self,
        session: Session,
        receipt: Receipt,
        *,
        body: bytes,
        content_type: str | None,
        filename: str,
        callback_url: str,
        target_url: str | None,
    ) -> DispatchResult:
        if not target_url:
            result = DispatchResult(failure=DispatchFailure.CONFIGURATION_MISSING)
        else:
            result = self.send(
                receipt_id=receipt.id,
                body=body,
                content_type=content_type,
                filename=filename,
                callback_url=callback_url,
                target_url=target_url,
            )
        if result.failure:
            mark_receipt_failed(
                session, receipt_id=receipt.id, error_message=result.error_message or ""
            )
        return result
