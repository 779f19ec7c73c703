"""Configuración central basada en variables de entorno."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigInvalid(RuntimeError):
    """Configuración incompleta; impide arrancar el servicio."""


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    request_log_level: str = Field(
        default="info",
        description=(
            "Nivel mínimo para registrar solicitudes en middleware. "
            "Valores más altos (warning/error) reducen registros de peticiones exitosas."
        ),
    )
    request_log_skip_prefixes: tuple[str, ...] = Field(
        default=("/health", "/favicon", "/docs", "/openapi"),
        description="Prefijos de ruta para los que no se registrarán eventos de request.started/completed.",
    )
    log_file_path: str | None = None

    host: str = "0.0.0.0"
    port: int = 3000

    motion_url: str | None = Field(
        default=None,
        description="Endpoint de Motion que recibe los mensajes reenviados desde Skype.",
    )
    motion_domain: str | None = Field(
        default=None,
        description="Dominio base de Motion para adjuntos; se deriva de `motion_url` cuando falta.",
    )
    motion_username: str | None = None
    motion_password: str | None = None

    # Acepta los nombres clásicos de Bot Framework además del prefijo propio
    microsoft_app_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BRIDGE_MICROSOFT_APP_ID", "MICROSOFT_APP_ID", "MicrosoftAppId"),
    )
    microsoft_app_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BRIDGE_MICROSOFT_APP_PASSWORD", "MICROSOFT_APP_PASSWORD", "MicrosoftAppPassword"
        ),
    )
    bot_token_url: str = "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
    bot_token_scope: str = "https://api.botframework.com/.default"
    bot_attachment_requires_token: bool = Field(
        default=True,
        description="Solicita un token de Bot Framework al descargar adjuntos enviados por usuarios.",
    )
    require_auth_header: bool = Field(
        default=False,
        description="Rechaza webhooks sin encabezado `Authorization: Bearer`.",
    )

    store_path: str = "data/conversations.json"
    staging_dir: str | None = Field(
        default=None,
        description="Directorio temporal para adjuntos en tránsito; usa el temporal del sistema si falta.",
    )
    attachments_enabled: bool = True
    attachment_timeout_seconds: float = 30.0
    forward_timeout_seconds: float = 10.0
    attachment_proxy_url: str | None = None
    attachment_proxy_token: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="BRIDGE_", extra="allow", populate_by_name=True
    )

    @property
    def motion_base_url(self) -> str | None:
        """Dominio de Motion sin barra final."""
        if self.motion_domain:
            return self.motion_domain.rstrip("/")
        if not self.motion_url:
            return None
        parts = urlsplit(self.motion_url)
        if not parts.scheme or not parts.netloc:
            return None
        return f"{parts.scheme}://{parts.netloc}"

    def validate_required(self) -> None:
        """Lanza `ConfigInvalid` si falta cualquier valor obligatorio."""
        missing = [
            name
            for name, value in (
                ("BRIDGE_MOTION_URL", self.motion_url),
                ("BRIDGE_MICROSOFT_APP_ID", self.microsoft_app_id),
                ("BRIDGE_MICROSOFT_APP_PASSWORD", self.microsoft_app_password),
            )
            if not value
        ]
        if missing:
            raise ConfigInvalid(f"Faltan variables de configuración: {', '.join(missing)}")
        if self.motion_base_url is None:
            raise ConfigInvalid(f"BRIDGE_MOTION_URL no es una URL válida: {self.motion_url!r}")
        if bool(self.motion_username) != bool(self.motion_password):
            raise ConfigInvalid("BRIDGE_MOTION_USERNAME y BRIDGE_MOTION_PASSWORD deben definirse juntos")


settings = Settings()
