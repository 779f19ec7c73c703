"""Punto de entrada principal del puente Motion ⇄ Skype."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from motion_bridge.api.routes.health import router as health_router
from motion_bridge.channels.motion.router import router as motion_router
from motion_bridge.channels.motion.service import InvalidReply, OutboundRelay, RelayError
from motion_bridge.channels.skype.router import router as skype_router
from motion_bridge.channels.skype.service import InboundRelay
from motion_bridge.core.config import ConfigInvalid, Settings, settings
from motion_bridge.core.logging import configure_logging, get_logger, resolve_log_level
from motion_bridge.core.middleware import RequestLoggingMiddleware
from motion_bridge.core.security import mask_secret
from motion_bridge.services.attachments import AttachmentTransfer
from motion_bridge.services.botframework import BotConnectorClient, BotTokenProvider
from motion_bridge.services.conversation_store import ConversationAddressStore
from motion_bridge.services.motion import MotionClient

log = get_logger("motion_bridge")


def _configure_logging(app_settings: Settings) -> None:
    default_log_level = logging.DEBUG if app_settings.environment != "production" else logging.INFO
    log_level = resolve_log_level(app_settings.log_level, default=default_log_level)
    per_logger_files: dict[str, str] = {}
    if app_settings.log_file_path:
        log_dir = Path(app_settings.log_file_path).parent
        per_logger_files = {
            "motion_bridge.request": str(log_dir / "request.log"),
            "motion_bridge.channels.skype": str(log_dir / "skype.log"),
            "motion_bridge.channels.motion": str(log_dir / "motion.log"),
        }
    configure_logging(
        level=log_level,
        log_file=app_settings.log_file_path,
        per_logger_files=per_logger_files,
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Crea y configura la instancia de FastAPI.

    `transport` reemplaza el transporte HTTP de todos los clientes salientes
    (Motion, Bot Framework y descargas de adjuntos).
    """
    app_settings = app_settings or settings
    _configure_logging(app_settings)

    store = ConversationAddressStore(app_settings.store_path)
    transfer = AttachmentTransfer(
        staging_dir=app_settings.staging_dir,
        timeout=app_settings.attachment_timeout_seconds,
        proxy_url=app_settings.attachment_proxy_url,
        proxy_token=app_settings.attachment_proxy_token,
        transport=transport,
    )
    motion = MotionClient.from_settings(app_settings, transport=transport)
    token_provider = BotTokenProvider.from_settings(app_settings, transport=transport)
    bot = BotConnectorClient(
        token_provider,
        timeout=app_settings.forward_timeout_seconds,
        transport=transport,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        app_settings.validate_required()
        await store.initialize()
        log.info(
            "bridge.started",
            extra={
                "store_path": str(store.path),
                "staging_dir": str(transfer.staging_dir),
                "motion_url": app_settings.motion_url,
                "app_id": mask_secret(app_settings.microsoft_app_id),
            },
        )
        yield

    app = FastAPI(title="Motion Skype Bridge", version="0.1.0", lifespan=lifespan)
    app.state.settings = app_settings
    app.state.store = store
    app.state.inbound_relay = InboundRelay(
        store=store,
        motion=motion,
        transfer=transfer,
        token_provider=token_provider if app_settings.bot_attachment_requires_token else None,
        bot_app_id=app_settings.microsoft_app_id,
    )
    app.state.outbound_relay = OutboundRelay(
        store=store,
        bot=bot,
        motion=motion,
        transfer=transfer,
        attachments_enabled=app_settings.attachments_enabled,
    )

    app.add_middleware(
        RequestLoggingMiddleware,
        level=app_settings.request_log_level,
        skip_prefixes=app_settings.request_log_skip_prefixes,
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(_: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Motion sólo entiende el contrato `{message}` de `/sendMessage`
        if request.url.path != "/sendMessage":
            return await request_validation_exception_handler(request, exc)
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=InvalidReply.status_code,
            content={"message": f"Solicitud inválida: {details}"},
        )

    app.include_router(health_router)
    app.include_router(skype_router)
    app.include_router(motion_router)

    return app


app = create_app()


def run() -> None:
    """Valida la configuración y levanta el servidor HTTP."""
    try:
        settings.validate_required()
    except ConfigInvalid as exc:
        log.error("bridge.config_invalid", extra={"error": str(exc)})
        sys.exit(1)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":  # pragma: no cover - arranque manual
    run()
