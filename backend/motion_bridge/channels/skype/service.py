"""Relay entrante: actividades de Skype hacia Motion."""

from __future__ import annotations

import re

from motion_bridge.core.logging import get_logger, log_event
from motion_bridge.models.conversation import NormalizedMessage
from motion_bridge.services.attachments import (
    AttachmentSource,
    AttachmentTransfer,
    AttachmentTransferError,
    TokenProvider,
    filename_from_url,
)
from motion_bridge.services.conversation_store import ConversationAddressStore, StoreIOError
from motion_bridge.services.motion import MotionClient, MotionClientError

from .schemas import Activity, Attachment

logger = get_logger(__name__)

# Marcado XML que Skype envía como texto durante una transferencia de archivo
_PROTOCOL_TEXT_RE = re.compile(r"^\s*<\s*(URIObject|file|legacyquote)\b", re.IGNORECASE)
# Tarjetas de control de archivos generadas por el propio canal
_PROTOCOL_CONTENT_PREFIXES = (
    "application/vnd.microsoft.card.file",
    "application/vnd.microsoft.teams.file",
    "application/vnd.microsoft.skype.file",
)


def normalize_sender_id(value: str) -> str:
    """Reduce un id de canal (`29:1abc`, `8:live:user`) a su último segmento."""
    return value.split("/")[-1].split(":")[-1]


def transfer_error_text(filename: str, exc: Exception) -> str:
    """Texto legible que sustituye a un adjunto que no pudo transferirse."""
    return f'No se pudo transferir el archivo adjunto "{filename}": {exc}'


def _is_protocol_attachment(attachment: Attachment) -> bool:
    content_type = (attachment.content_type or "").lower()
    return content_type.startswith(_PROTOCOL_CONTENT_PREFIXES)


def pick_attachment(activity: Activity) -> Attachment | None:
    """Primer adjunto descargable de la actividad; los demás se ignoran."""
    for attachment in activity.attachments:
        if attachment.content_url and not _is_protocol_attachment(attachment):
            return attachment
    return None


def is_protocol_artifact(activity: Activity) -> bool:
    """Detecta mensajes que son señalización de transferencia y no contenido real."""
    if pick_attachment(activity) is not None:
        return False
    if activity.attachments and all(_is_protocol_attachment(item) for item in activity.attachments):
        return True
    return bool(activity.text and _PROTOCOL_TEXT_RE.match(activity.text))


class InboundRelay:
    """Registra la dirección de la conversación y reenvía el mensaje a Motion."""

    def __init__(
        self,
        *,
        store: ConversationAddressStore,
        motion: MotionClient,
        transfer: AttachmentTransfer,
        token_provider: TokenProvider | None = None,
        bot_app_id: str | None = None,
    ) -> None:
        self._store = store
        self._motion = motion
        self._transfer = transfer
        self._token_provider = token_provider
        self._bot_app_id = bot_app_id

    def should_relay(self, activity: Activity) -> bool:
        """Filtra actividades que no deben llegar a Motion."""
        if activity.type != "message":
            return False
        sender = normalize_sender_id(activity.from_.id)
        if activity.recipient is not None and sender == normalize_sender_id(activity.recipient.id):
            return False
        if self._bot_app_id and sender == normalize_sender_id(self._bot_app_id):
            return False
        if is_protocol_artifact(activity):
            return False
        return bool((activity.text or "").strip()) or pick_attachment(activity) is not None

    async def handle_activity(self, activity: Activity) -> NormalizedMessage | None:
        """Procesa una actividad completa; retorna el mensaje reenviado o `None`.

        Nunca propaga errores de Motion: el webhook ya fue confirmado.
        """
        conversation_id = activity.conversation.id
        if not self.should_relay(activity):
            log_event(
                logger,
                "skype.activity_ignored",
                conversation_id=conversation_id,
                activity_type=activity.type,
            )
            return None

        await self._record_address(activity)

        attachment = pick_attachment(activity)
        if attachment is None:
            message = self._message(activity, text=activity.text or "")
        else:
            message = await self._relay_attachment(activity, attachment)

        try:
            result = await self._motion.forward(message)
        except MotionClientError as exc:
            logger.exception(
                "skype.forward_failed",
                extra={"conversation_id": conversation_id, "error": str(exc)},
            )
            return None

        log_event(
            logger,
            "skype.inbound_forwarded",
            conversation_id=conversation_id,
            attachment_id=message.attachment_id,
            motion_response=result,
        )
        return message

    async def _record_address(self, activity: Activity) -> None:
        try:
            await self._store.upsert(activity.conversation.id, activity.to_address())
        except StoreIOError as exc:
            # Se reenvía igualmente; la respuesta de Motion fallará en lookup
            logger.exception(
                "skype.address_record_failed",
                extra={"conversation_id": activity.conversation.id, "error": str(exc)},
            )

    async def _relay_attachment(self, activity: Activity, attachment: Attachment) -> NormalizedMessage:
        filename = attachment.name or filename_from_url(attachment.content_url or "")
        source = AttachmentSource(
            url=attachment.content_url or "",
            filename=filename,
            token_provider=self._token_provider,
        )
        try:
            attachment_id = await self._transfer.transfer(source, self._motion)
        except AttachmentTransferError as exc:
            logger.warning(
                "skype.attachment_transfer_failed",
                extra={
                    "conversation_id": activity.conversation.id,
                    "attachment_name": filename,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return self._message(activity, text=transfer_error_text(filename, exc))
        return self._message(activity, text=filename, attachment_id=attachment_id)

    @staticmethod
    def _message(
        activity: Activity, *, text: str, attachment_id: str | None = None
    ) -> NormalizedMessage:
        return NormalizedMessage(
            conversation_id=activity.conversation.id,
            sender_id=normalize_sender_id(activity.from_.id),
            sender_name=activity.from_.name,
            text=text,
            attachment_id=attachment_id,
        )
