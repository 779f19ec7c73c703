"""Dependencias reutilizables para rutas de Skype."""

from fastapi import Header, HTTPException, Request, status

from motion_bridge.core.security import AuthorizationError, extract_bearer_token

from .service import InboundRelay


async def verify_bot_authorization(
    request: Request,
    authorization: str | None = Header(default=None),
) -> None:
    """Exige `Authorization: Bearer` cuando la configuración lo requiere.

    La validación criptográfica del JWT de Bot Framework queda fuera del puente;
    aquí sólo se rechazan llamadas sin credencial.
    """
    if not request.app.state.settings.require_auth_header:
        return
    try:
        extract_bearer_token(authorization)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


def get_inbound_relay(request: Request) -> InboundRelay:
    """Obtiene el relay entrante registrado en la aplicación."""
    return request.app.state.inbound_relay
