"""Transferencia de adjuntos entre un origen HTTP y un destino de carga.

Cada transferencia descarga el archivo a un archivo temporal exclusivo
(staging), lo entrega al destino y lo elimina siempre, tanto en éxito como en
error. Ninguna transferencia comparte archivos con otra.
"""

from __future__ import annotations

import asyncio
import mimetypes
import re
import secrets
import tempfile
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import unquote, urlsplit

import httpx

from motion_bridge.core.logging import get_logger, log_event

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str]]

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


class AttachmentTransferError(RuntimeError):
    """Error base de una transferencia de adjunto."""


class FetchFailed(AttachmentTransferError):
    """No se pudo descargar el adjunto desde el origen."""


class UploadFailed(AttachmentTransferError):
    """No se pudo entregar el adjunto al destino."""


@dataclass(slots=True)
class AttachmentSource:
    """Origen HTTP de un adjunto y su contexto de autenticación."""

    url: str
    filename: str
    auth: httpx.Auth | None = None
    token_provider: TokenProvider | None = None


@dataclass(slots=True)
class StagedFile:
    """Copia local temporal de un adjunto descargado."""

    path: Path
    filename: str
    content_type: str
    size: int


class AttachmentDestination(Protocol):
    """Destino capaz de recibir un archivo en staging y devolver su id remoto."""

    async def upload(self, staged: StagedFile) -> str: ...


def guess_content_type(filename: str) -> str:
    """Infiere el content-type a partir de la extensión del archivo."""
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


def filename_from_url(url: str, default: str = "attachment") -> str:
    """Obtiene un nombre de archivo razonable desde la ruta de una URL."""
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    return name or default


class AttachmentTransfer:
    """Descarga adjuntos a staging y los reenvía a un destino."""

    def __init__(
        self,
        *,
        staging_dir: str | Path | None = None,
        timeout: float = 30.0,
        proxy_url: str | None = None,
        proxy_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._staging_dir = Path(staging_dir) if staging_dir else Path(tempfile.gettempdir())
        self._timeout = httpx.Timeout(timeout)
        # Límite total de la descarga; httpx sólo acota cada fase por separado
        self._deadline = timeout
        self._proxy: httpx.Proxy | None = None
        if proxy_url:
            headers = {"Proxy-Authorization": f"Bearer {proxy_token}"} if proxy_token else None
            self._proxy = httpx.Proxy(proxy_url, headers=headers)
        self._transport = transport

    @property
    def staging_dir(self) -> Path:
        return self._staging_dir

    async def transfer(self, source: AttachmentSource, destination: AttachmentDestination) -> str:
        """Descarga `source`, lo sube a `destination` y retorna el id remoto.

        Raises:
            FetchFailed: si la descarga falla (red, estado no 2xx, autenticación, timeout).
            UploadFailed: si la carga al destino falla.
        """
        async with self.staged(source) as staged:
            try:
                remote_id = await destination.upload(staged)
            except UploadFailed:
                raise
            except (httpx.HTTPError, OSError) as exc:
                raise UploadFailed(f"Error al subir {staged.filename}: {exc}") from exc

        log_event(
            logger,
            "attachments.transferred",
            attachment_name=source.filename,
            remote_id=remote_id,
            size=staged.size,
        )
        return remote_id

    @asynccontextmanager
    async def staged(self, source: AttachmentSource) -> AsyncIterator[StagedFile]:
        """Descarga el adjunto y lo expone sólo durante el bloque `async with`."""
        staged = await self._fetch(source)
        try:
            yield staged
        finally:
            _discard(staged.path)

    async def _fetch(self, source: AttachmentSource) -> StagedFile:
        path: Path | None = None
        try:
            path = self._staging_path(source)
            async with asyncio.timeout(self._deadline):
                size = await self._download(source, path)
        except FetchFailed:
            _discard(path)
            raise
        except TimeoutError as exc:
            _discard(path)
            raise FetchFailed(
                f"La descarga de {source.filename} superó {self._deadline:g}s"
            ) from exc
        except (httpx.HTTPError, OSError) as exc:
            _discard(path)
            raise FetchFailed(f"Error al descargar {source.filename}: {exc}") from exc
        except BaseException:
            _discard(path)
            raise

        return StagedFile(
            path=path,
            filename=source.filename,
            content_type=guess_content_type(source.filename),
            size=size,
        )

    async def _download(self, source: AttachmentSource, path: Path) -> int:
        headers: dict[str, str] = {}
        if source.token_provider is not None:
            try:
                token = await source.token_provider()
            except Exception as exc:
                raise FetchFailed(f"No se obtuvo token para descargar {source.filename}: {exc}") from exc
            headers["Authorization"] = f"Bearer {token}"

        async with self._client(proxy=self._proxy) as client:
            async with client.stream(
                "GET", source.url, headers=headers, auth=source.auth
            ) as response:
                if not response.is_success:
                    raise FetchFailed(
                        f"Descarga de {source.filename} respondió {response.status_code}"
                    )
                size = 0
                with path.open("xb") as handle:
                    async for chunk in response.aiter_bytes():
                        size += len(chunk)
                        await asyncio.to_thread(handle.write, chunk)
        return size

    def _client(self, *, proxy: httpx.Proxy | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            proxy=proxy,
            transport=self._transport,
            follow_redirects=True,
        )

    def _staging_path(self, source: AttachmentSource) -> Path:
        self._staging_dir.mkdir(parents=True, exist_ok=True)
        suffix = PurePosixPath(source.filename).suffix or PurePosixPath(urlsplit(source.url).path).suffix
        if not _EXTENSION_RE.match(suffix):
            suffix = ""
        key = f"{time.time_ns()}-{secrets.token_hex(4)}"
        return self._staging_dir / f"{key}{suffix.lower()}"


def _discard(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("attachments.cleanup_failed", extra={"path": str(path)})
