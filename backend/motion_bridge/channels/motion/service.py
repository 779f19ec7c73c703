"""Relay saliente: respuestas de Motion hacia la conversación de Skype."""

from __future__ import annotations

import asyncio

from fastapi import status

from motion_bridge.core.logging import get_logger, log_event
from motion_bridge.services.attachments import AttachmentTransfer, AttachmentTransferError
from motion_bridge.services.botframework import BotConnectorClient, DispatchFailed, OutgoingAttachment
from motion_bridge.services.conversation_store import ConversationAddressStore
from motion_bridge.services.motion import MotionClient, MotionClientError

from .schemas import SendMessageRequest

logger = get_logger(__name__)


class RelayError(Exception):
    """Error de entrega que se reporta al llamador de `/sendMessage`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConversationNotFound(RelayError):
    """No hay dirección registrada para el `threadId` (cerrada o desconocida)."""


class InvalidReply(RelayError):
    """Respuesta incompleta; se rechaza antes de cualquier llamada de red."""


class DeliveryFailed(RelayError):
    """El adjunto o el mensaje no pudieron entregarse al canal."""


class AttachmentsUnsupported(RelayError):
    """Esta instancia no reenvía adjuntos salientes."""

    status_code = status.HTTP_501_NOT_IMPLEMENTED


class OutboundRelay:
    """Resuelve la dirección de la conversación y despacha la respuesta."""

    def __init__(
        self,
        *,
        store: ConversationAddressStore,
        bot: BotConnectorClient,
        motion: MotionClient,
        transfer: AttachmentTransfer,
        attachments_enabled: bool = True,
    ) -> None:
        self._store = store
        self._bot = bot
        self._motion = motion
        self._transfer = transfer
        self._attachments_enabled = attachments_enabled

    async def send(self, request: SendMessageRequest) -> None:
        """Entrega la respuesta o lanza un `RelayError` descriptivo."""
        thread_id = request.interaction.thread_id

        if request.has_attachment:
            if not self._attachments_enabled:
                raise AttachmentsUnsupported("El envío de adjuntos no está habilitado")
            if not (request.body or "").strip():
                raise InvalidReply("Los adjuntos requieren el nombre de archivo en `body`")
        elif not request.body:
            raise InvalidReply("La respuesta no tiene `body` ni `AttachmentId`")

        address = await self._store.lookup(thread_id)
        if address is None:
            log_event(logger, "motion.conversation_not_found", thread_id=thread_id)
            raise ConversationNotFound(
                f"La conversación {thread_id} no existe o ya fue cerrada"
            )

        try:
            if request.has_attachment:
                await self._send_attachment(address, request)
            else:
                await self._bot.send_reply(address, request.body or "")
        except DispatchFailed as exc:
            logger.exception(
                "motion.send_failed",
                extra={"thread_id": thread_id, "error": str(exc)},
            )
            raise DeliveryFailed(f"No se pudo entregar el mensaje: {exc}") from exc

        log_event(
            logger,
            "motion.reply_delivered",
            thread_id=thread_id,
            attachment_id=request.attachment_id,
        )

    async def _send_attachment(self, address: dict, request: SendMessageRequest) -> None:
        filename = (request.body or "").strip()
        try:
            source = self._motion.attachment_source(str(request.attachment_id), filename)
            async with self._transfer.staged(source) as staged:
                content = await asyncio.to_thread(staged.path.read_bytes)
                attachment = OutgoingAttachment(
                    filename=staged.filename,
                    content_type=staged.content_type,
                    content=content,
                )
                await self._bot.send_reply(address, "", attachment=attachment)
        except (AttachmentTransferError, MotionClientError, OSError) as exc:
            logger.warning(
                "motion.attachment_fetch_failed",
                extra={
                    "thread_id": request.interaction.thread_id,
                    "attachment_id": request.attachment_id,
                    "error": str(exc),
                },
            )
            raise DeliveryFailed(f"No se pudo obtener el adjunto {filename}: {exc}") from exc
