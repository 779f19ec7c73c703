"""Cliente HTTP para el helpdesk Motion."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from motion_bridge.core.config import Settings
from motion_bridge.core.logging import get_logger
from motion_bridge.models.conversation import NormalizedMessage

from .attachments import AttachmentSource, StagedFile, UploadFailed

logger = get_logger(__name__)


class MotionClientError(RuntimeError):
    """Errores al comunicarse con Motion."""


class MotionClient:
    """Reenvía mensajes a Motion y expone su API de adjuntos."""

    def __init__(
        self,
        *,
        forward_url: str | None,
        base_url: str | None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        upload_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._forward_url = forward_url
        self._base_url = base_url.rstrip("/") if base_url else None
        self._auth = httpx.BasicAuth(username, password) if username and password else None
        self._timeout = timeout
        self._upload_timeout = upload_timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> MotionClient:
        return cls(
            forward_url=settings.motion_url,
            base_url=settings.motion_base_url,
            username=settings.motion_username,
            password=settings.motion_password,
            timeout=settings.forward_timeout_seconds,
            upload_timeout=settings.attachment_timeout_seconds,
            transport=transport,
        )

    @property
    def auth(self) -> httpx.BasicAuth | None:
        return self._auth

    async def forward(self, message: NormalizedMessage) -> Any:
        """Publica un mensaje normalizado en el endpoint configurado de Motion."""
        if not self._forward_url:
            raise MotionClientError("Motion no está configurado (BRIDGE_MOTION_URL)")

        payload = message.to_motion_payload()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._forward_url, json=payload)
        except httpx.RequestError as exc:
            msg = f"Error de red al reenviar mensaje a Motion: {exc}"
            raise MotionClientError(msg) from exc

        if response.status_code >= 400:
            msg = (
                "Motion respondió error al reenviar mensaje"
                f" (status={response.status_code}, body={response.text!r})"
            )
            raise MotionClientError(msg)

        try:
            return response.json()
        except ValueError:
            return response.text

    async def upload(self, staged: StagedFile) -> str:
        """Sube un archivo en staging a `/api/attachments` y retorna su id."""
        url = f"{self._require_base_url(UploadFailed)}/api/attachments"
        content = await asyncio.to_thread(staged.path.read_bytes)
        files = {"file": (staged.filename, content, staged.content_type)}
        async with httpx.AsyncClient(timeout=self._upload_timeout, transport=self._transport) as client:
            response = await client.post(url, files=files, auth=self._auth)

        if response.status_code >= 400:
            raise UploadFailed(
                f"Motion rechazó el adjunto {staged.filename}"
                f" (status={response.status_code}, body={response.text!r})"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UploadFailed(f"Respuesta inesperada al subir adjunto: {response.text!r}") from exc
        attachment_id = data.get("id") if isinstance(data, dict) else None
        if attachment_id is None or attachment_id == "":
            raise UploadFailed(f"Motion no devolvió id para el adjunto: {data!r}")
        return str(attachment_id)

    def attachment_source(self, attachment_id: str, filename: str) -> AttachmentSource:
        """Describe la descarga de un adjunto de Motion con las credenciales del servicio."""
        base_url = self._require_base_url(MotionClientError)
        return AttachmentSource(
            url=f"{base_url}/api/attachments/{attachment_id}/download",
            filename=filename,
            auth=self._auth,
        )

    def _require_base_url(self, error: type[Exception]) -> str:
        if not self._base_url:
            raise error("Dominio de Motion no configurado (BRIDGE_MOTION_DOMAIN)")
        return self._base_url
