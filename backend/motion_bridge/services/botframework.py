"""Cliente mínimo del Bot Connector (Skype) para tokens y envío de respuestas."""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from motion_bridge.core.config import Settings
from motion_bridge.core.logging import get_logger, log_event
from motion_bridge.models.conversation import ConversationAddress, address_conversation_id

logger = get_logger(__name__)

# Margen para renovar el token antes de que Bot Framework lo invalide
_TOKEN_EXPIRY_MARGIN = 60.0


class BotFrameworkError(RuntimeError):
    """Errores al hablar con Bot Framework."""


class DispatchFailed(BotFrameworkError):
    """La respuesta no pudo entregarse al canal de chat."""


@dataclass(slots=True)
class OutgoingAttachment:
    """Adjunto embebido en una respuesta saliente."""

    filename: str
    content_type: str
    content: bytes

    def to_activity_attachment(self) -> dict[str, str]:
        encoded = base64.b64encode(self.content).decode("ascii")
        return {
            "contentType": self.content_type,
            "contentUrl": f"data:{self.content_type};base64,{encoded}",
            "name": self.filename,
        }


class BotTokenProvider:
    """Obtiene tokens OAuth2 (client credentials) para el Bot Connector."""

    def __init__(
        self,
        *,
        app_id: str | None,
        app_password: str | None,
        token_url: str,
        scope: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._app_id = app_id
        self._app_password = app_password
        self._token_url = token_url
        self._scope = scope
        self._timeout = timeout
        self._transport = transport
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> BotTokenProvider:
        return cls(
            app_id=settings.microsoft_app_id,
            app_password=settings.microsoft_app_password,
            token_url=settings.bot_token_url,
            scope=settings.bot_token_scope,
            timeout=settings.forward_timeout_seconds,
            transport=transport,
        )

    async def __call__(self) -> str:
        return await self.get_token()

    async def get_token(self) -> str:
        """Retorna un token vigente, solicitándolo cuando expiró."""
        async with self._lock:
            if self._token and time.monotonic() < self._expires_at:
                return self._token
            token, expires_in = await self._request_token()
            self._token = token
            self._expires_at = time.monotonic() + max(expires_in - _TOKEN_EXPIRY_MARGIN, 0.0)
            return token

    async def _request_token(self) -> tuple[str, float]:
        if not self._app_id or not self._app_password:
            raise BotFrameworkError("Credenciales de Bot Framework no configuradas")
        data = {
            "grant_type": "client_credentials",
            "client_id": self._app_id,
            "client_secret": self._app_password,
            "scope": self._scope,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._token_url, data=data)
        except httpx.RequestError as exc:
            raise BotFrameworkError(f"Error de red al obtener token: {exc}") from exc

        if response.status_code >= 400:
            raise BotFrameworkError(
                f"Bot Framework rechazó la solicitud de token (status={response.status_code})"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise BotFrameworkError(f"Respuesta de token no es JSON: {response.text!r}") from exc
        token =payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise BotFrameworkError(f"Respuesta de token sin access_token: {payload!r}")
        return token, float(payload.get("expires_in") or 3600)


class BotConnectorClient:
    """Envía actividades de respuesta a la conversación indicada por una dirección."""

    def __init__(
        self,
        token_provider: BotTokenProvider,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport

    async def send_reply(
        self,
        address: ConversationAddress,
        text: str,
        *,
        attachment: OutgoingAttachment | None = None,
    ) -> str | None:
        """Publica `text` (y un adjunto opcional) en la conversación de `address`.

        Retorna el id de actividad asignado por el canal cuando viene en la respuesta.

        Raises:
            DispatchFailed: si la dirección es incompleta o el canal rechaza el envío.
        """
        conversation_id = address_conversation_id(address)
        service_url = address.get("serviceUrl")
        if not conversation_id or not service_url:
            raise DispatchFailed("La dirección guardada no incluye serviceUrl/conversation.id")

        activity = build_reply_activity(address, text, attachment=attachment)
        url = (
            f"{str(service_url).rstrip('/')}/v3/conversations/"
            f"{quote(conversation_id, safe='')}/activities"
        )

        try:
            token = await self._token_provider.get_token()
        except BotFrameworkError as exc:
            raise DispatchFailed(str(exc)) from exc

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=activity,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.RequestError as exc:
            raise DispatchFailed(f"Error de red al enviar respuesta: {exc}") from exc

        if response.status_code >= 400:
            raise DispatchFailed(
                "El canal rechazó la respuesta"
                f" (status={response.status_code}, body={response.text!r})"
            )

        log_event(
            logger,
            "botframework.reply_sent",
            conversation_id=conversation_id,
            has_attachment=attachment is not None,
        )
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("id") if isinstance(body, dict) else None


def build_reply_activity(
    address: ConversationAddress,
    text: str,
    *,
    attachment: OutgoingAttachment | None = None,
) -> dict[str, Any]:
    """Construye la actividad `message` nativa del canal para una dirección."""
    activity: dict[str, Any] = {
        "type": "message",
        "text": text,
        "textFormat": "plain",
        "conversation": address.get("conversation"),
    }
    if address.get("bot"):
        activity["from"] = address["bot"]
    if address.get("user"):
        activity["recipient"] = address["user"]
    if address.get("channelId"):
        activity["channelId"] = address["channelId"]
    if attachment is not None:
        activity["attachments"] = [attachment.to_activity_attachment()]
    return activity
