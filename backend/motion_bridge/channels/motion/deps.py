"""Dependencias para las rutas expuestas a Motion."""

from fastapi import Request

from .service import OutboundRelay


def get_outbound_relay(request: Request) -> OutboundRelay:
    """Obtiene el relay saliente registrado en la aplicación."""
    return request.app.state.outbound_relay
