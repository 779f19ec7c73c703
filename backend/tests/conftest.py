"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from motion_bridge.core.config import Settings
from motion_bridge.main import create_app

MOTION_FORWARD_URL = "https://motion.test/api/skype/incoming"
TOKEN_URL = "https://login.test/botframework/token"
SERVICE_URL = "https://smba.test/apis/"
ATTACHMENT_URL = "https://skype.test/v1/attachments/0-abc/views/original"


class FakeServices:
    """Simula Motion, Bot Framework y los orígenes de adjuntos vía MockTransport.

    Cada request queda registrado; `override` permite forzar una respuesta o
    una excepción para un método y ruta concretos.
    """

    forward_url = MOTION_FORWARD_URL
    token_url = TOKEN_URL
    service_url = SERVICE_URL
    attachment_url = ATTACHMENT_URL

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._overrides: dict[tuple[str, str], httpx.Response | Exception] = {}
        self.attachment_bytes = b"%PDF-1.4 fake document"

    def override(self, method: str, url: str, outcome: httpx.Response | Exception) -> None:
        self._overrides[(method, url)] = outcome

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        outcome = self._overrides.get((request.method, url))
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome

        host, path = request.url.host, request.url.path
        if request.method == "POST" and url == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "bot-token", "expires_in": 3600})
        if request.method == "POST" and url == MOTION_FORWARD_URL:
            return httpx.Response(200, json={"status": "received"})
        if request.method == "POST" and host == "motion.test" and path == "/api/attachments":
            return httpx.Response(200, json={"id": 42})
        if request.method == "GET" and host == "motion.test" and path.endswith("/download"):
            return httpx.Response(200, content=self.attachment_bytes)
        if request.method == "GET" and host == "skype.test":
            return httpx.Response(200, content=self.attachment_bytes)
        if request.method == "POST" and host == "smba.test" and path.endswith("/activities"):
            return httpx.Response(201, json={"id": "activity-1"})
        return httpx.Response(404, json={"error": "not found"})

    def sent(self, method: str, url_prefix: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and str(request.url).startswith(url_prefix)
        ]

    def forwarded(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.sent("POST", MOTION_FORWARD_URL)]

    def activities(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.sent("POST", SERVICE_URL)]


def make_activity(
    *,
    conversation_id: str = "c1",
    text: str | None = "hello",
    sender_id: str = "29:1user-abc",
    sender_name: str = "Ana",
    attachments: list[dict[str, Any]] | None = None,
    activity_type: str = "message",
) -> dict[str, Any]:
    """Actividad de Bot Framework tal como llega al webhook."""
    return {
        "type": activity_type,
        "id": "1485983408511",
        "timestamp": "2024-02-01T21:10:07.437Z",
        "serviceUrl": SERVICE_URL,
        "channelId": "skype",
        "from": {"id": sender_id, "name": sender_name},
        "conversation": {"id": conversation_id},
        "recipient": {"id": "28:bot-app-id", "name": "Motion Bot"},
        "text": text,
        "attachments": attachments or [],
    }


@pytest.fixture(name="fake_services")
def fixture_fake_services() -> FakeServices:
    return FakeServices()


@pytest.fixture(name="mock_transport")
def fixture_mock_transport(fake_services: FakeServices) -> httpx.MockTransport:
    return httpx.MockTransport(fake_services.handler)


@pytest.fixture(name="staging_dir")
def fixture_staging_dir(tmp_path: Path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture(name="test_settings")
def fixture_test_settings(tmp_path: Path, staging_dir: Path) -> Settings:
    """Configuración completa apuntando a servicios simulados y rutas temporales."""
    return Settings(
        _env_file=None,
        motion_url=MOTION_FORWARD_URL,
        motion_username="svc-user",
        motion_password="svc-pass",
        microsoft_app_id="bot-app-id",
        microsoft_app_password="bot-secret",
        bot_token_url=TOKEN_URL,
        store_path=str(tmp_path / "data" / "conversations.json"),
        staging_dir=str(staging_dir),
        log_file_path=None,
    )


@pytest.fixture(name="app")
def fixture_app(test_settings: Settings, mock_transport: httpx.MockTransport):
    return create_app(test_settings, transport=mock_transport)


@pytest.fixture(name="async_client")
async def fixture_async_client(app) -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(name="activity_factory")
def fixture_activity_factory():
    return make_activity
