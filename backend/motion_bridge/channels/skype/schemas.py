"""Esquemas Pydantic para actividades de Bot Framework (Skype)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChannelAccount(BaseModel):
    """Usuario o bot participante en la conversación."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None


class ConversationAccount(BaseModel):
    """Conversación de origen; los campos extra se conservan en la dirección."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None
    is_group: bool | None = Field(default=None, alias="isGroup")


class Attachment(BaseModel):
    """Adjunto declarado por el canal."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content_type: str | None = Field(default=None, alias="contentType")
    content_url: str | None = Field(default=None, alias="contentUrl")
    name: str | None = None
    content: Any = None


class Activity(BaseModel):
    """Actividad entrante del webhook `/api/messages`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    id: str | None = None
    timestamp: str | None = None
    service_url: str | None = Field(default=None, alias="serviceUrl")
    channel_id: str | None = Field(default=None, alias="channelId")
    from_: ChannelAccount = Field(alias="from")
    conversation: ConversationAccount
    recipient: ChannelAccount | None = None
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)

    def to_address(self) -> dict[str, Any]:
        """Construye la dirección opaca usada después para responder."""
        address: dict[str, Any] = {
            "id": self.id,
            "channelId": self.channel_id,
            "user": self.from_.model_dump(by_alias=True, exclude_none=True),
            "conversation": self.conversation.model_dump(by_alias=True, exclude_none=True),
            "serviceUrl": self.service_url,
        }
        if self.recipient is not None:
            address["bot"] = self.recipient.model_dump(by_alias=True, exclude_none=True)
        return {key: value for key, value in address.items() if value is not None}
