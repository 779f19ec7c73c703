"""Modelos base compartidos entre ambos sentidos del puente."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

# Dirección de conversación entregada por Bot Framework. Se guarda y se
# devuelve tal cual; sólo `conversation.id` se usa como llave.
ConversationAddress = dict[str, Any]

MAP_KEY = "skype"


def address_conversation_id(address: ConversationAddress) -> str | None:
    """Extrae `conversation.id` de una dirección opaca, si existe."""
    conversation = address.get("conversation")
    if not isinstance(conversation, dict):
        return None
    value = conversation.get("id")
    return str(value) if value else None


class ConversationRecord(BaseModel):
    """Registro persistido: una dirección por conversación."""

    conversation_id: str
    address: ConversationAddress


class NormalizedMessage(BaseModel):
    """Mensaje intercambiado con Motion en ambos sentidos."""

    conversation_id: str
    sender_id: str
    sender_name: str | None = None
    text: str = ""
    attachment_id: str | None = None

    def to_motion_payload(self) -> dict[str, Any]:
        """Serializa al contrato JSON que espera el endpoint de Motion."""
        payload: dict[str, Any] = {
            "from": self.sender_id,
            "firstName": self.sender_name or "",
            "body": self.text,
            "mapKey": MAP_KEY,
            "threadId": self.conversation_id,
        }
        if self.attachment_id is not None:
            payload["AttachmentId"] = self.attachment_id
        return payload
