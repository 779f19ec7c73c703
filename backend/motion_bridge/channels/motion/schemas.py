"""Esquemas del contrato `/sendMessage` expuesto a Motion."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Interaction(BaseModel):
    """Interacción de Motion; `threadId` es el id de conversación de Skype."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    thread_id: str = Field(alias="threadId")


class SendMessageRequest(BaseModel):
    """Respuesta de un agente de Motion que debe entregarse en Skype."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    interaction: Interaction = Field(alias="Interaction")
    body: str | None = None
    attachment_id: str | None = Field(default=None, alias="AttachmentId")

    @field_validator("attachment_id", mode="before")
    @classmethod
    def _coerce_attachment_id(cls, value: object) -> object:
        # Motion envía ids numéricos
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_id)
