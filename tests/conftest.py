from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

# Set env before any receipt_intake imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.receipt_intake_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ["EXTRACTION_WEBHOOK_URL"] = ""
os.environ["CALLBACK_BASE_URL"] = ""

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import receipt_intake.models  # noqa: F401
    from receipt_intake.core.db import engine
    from receipt_intake.core.models import Base

    import receipt_intake.core.storage as storage_mod

    storage_mod._storage = None
    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


class WebhookRecorder:
    """Stands in for the extraction webhook and remembers what it was sent."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response] | None = None):
        self.requests: list[httpx.Request] = []
        self._responder = responder or (lambda _request: httpx.Response(200, json={"ok": True}))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    def gateway(self, *, default_url: str | None = "http://extractor.example.com/hook"):
        from receipt_intake.modules.extraction.gateway import ExtractionGateway

        return ExtractionGateway(
            default_url=default_url, timeout_s=5, transport=httpx.MockTransport(self)
        )


@pytest.fixture()
def webhook() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture()
def client_for():
    from fastapi.testclient import TestClient

    from receipt_intake.api.deps import get_extraction_gateway
    from receipt_intake.main import app

    def _make(gateway) -> TestClient:
        app.dependency_overrides[get_extraction_gateway] = lambda: gateway
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
