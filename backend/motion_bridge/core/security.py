"""Helpers de autenticación compartidos por webhooks y clientes HTTP."""

from __future__ import annotations


class AuthorizationError(Exception):
    """Encabezado de autorización ausente o mal formado."""


def extract_bearer_token(header: str | None) -> str:
    """Obtiene el token de un encabezado `Authorization: Bearer <token>`.

    Raises:
        AuthorizationError: si el encabezado falta o no usa el esquema Bearer.
    """
    if not header:
        raise AuthorizationError("Missing Authorization header")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthorizationError("Authorization header must use the Bearer scheme")
    return token.strip()


def mask_secret(value: str | None) -> str | None:
    """Enmascara secretos para logging seguro."""
    if not value:
        return value
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"
