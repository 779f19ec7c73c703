"""Endpoint que Motion invoca para responder en Skype."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from .deps import get_outbound_relay
from .schemas import SendMessageRequest
from .service import OutboundRelay

router = APIRouter(tags=["motion"])


@router.post(
    "/sendMessage",
    response_class=PlainTextResponse,
    summary="Entrega una respuesta de Motion en la conversación de Skype",
)
async def send_message(
    payload: SendMessageRequest,
    relay: OutboundRelay = Depends(get_outbound_relay),
) -> PlainTextResponse:
    """Responde `ok` sólo cuando el canal aceptó el mensaje."""
    await relay.send(payload)
    return PlainTextResponse("ok")
