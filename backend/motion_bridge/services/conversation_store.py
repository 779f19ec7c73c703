"""Almacén de direcciones de conversación respaldado por un documento JSON.

El documento completo es un arreglo de direcciones de Bot Framework. Cada
mutación lee el documento, aplica el cambio y lo reescribe de forma atómica.
El ciclo lectura-modificación-escritura se serializa con un único candado en
proceso; el servicio es el único escritor del archivo.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from motion_bridge.core.logging import get_logger, log_event
from motion_bridge.models.conversation import (
    ConversationAddress,
    ConversationRecord,
    address_conversation_id,
)

logger = get_logger(__name__)


class StoreIOError(RuntimeError):
    """El documento de direcciones no pudo leerse o escribirse."""


class ConversationAddressStore:
    """Mapa durable `conversation_id -> dirección` con semántica first-write-wins."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def initialize(self) -> None:
        """Garantiza que exista un documento legible; si no, inicia vacío."""
        async with self._lock:
            if not self._path.exists():
                log_event(logger, "store.created_empty", path=str(self._path))
                await asyncio.to_thread(self._write_document, [])
                return
            try:
                await asyncio.to_thread(self._read_document)
            except StoreIOError as exc:
                log_event(
                    logger,
                    "store.reset_empty",
                    path=str(self._path),
                    error=str(exc),
                )
                await asyncio.to_thread(self._quarantine)
                await asyncio.to_thread(self._write_document, [])

    async def upsert(self, conversation_id: str, address: ConversationAddress) -> bool:
        """Inserta la dirección sólo si la conversación no existe.

        Retorna `True` cuando se creó el registro y `False` cuando ya existía
        (el valor original se conserva).
        """
        async with self._lock:
            try:
                document = await asyncio.to_thread(self._read_document)
            except StoreIOError as exc:
                logger.warning(
                    "store.read_failed",
                    extra={"path": str(self._path), "error": str(exc)},
                )
                await asyncio.to_thread(self._quarantine)
                document = []

            if _find(document, conversation_id) is not None:
                return False

            document.append(address)
            await asyncio.to_thread(self._write_document, document)

        log_event(logger, "store.address_recorded", conversation_id=conversation_id)
        return True

    async def lookup(self, conversation_id: str) -> ConversationAddress | None:
        """Retorna la dirección guardada o `None` si la conversación no existe."""
        try:
            document = await asyncio.to_thread(self._read_document)
        except StoreIOError as exc:
            logger.warning(
                "store.read_failed",
                extra={"path": str(self._path), "error": str(exc)},
            )
            return None
        return _find(document, conversation_id)

    async def records(self) -> list[ConversationRecord]:
        """Lista todos los registros válidos del documento."""
        try:
            document = await asyncio.to_thread(self._read_document)
        except StoreIOError:
            return []
        records: list[ConversationRecord] = []
        for address in document:
            conversation_id = address_conversation_id(address)
            if conversation_id:
                records.append(ConversationRecord(conversation_id=conversation_id, address=address))
        return records

    def _read_document(self) -> list[ConversationAddress]:
        if not self._path.exists():
            return []
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(f"No se pudo leer {self._path}: {exc}") from exc
        if not raw.strip():
            return []
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreIOError(f"Documento JSON inválido en {self._path}: {exc}") from exc
        if not isinstance(data, list):
            raise StoreIOError(f"Se esperaba un arreglo JSON en {self._path}")
        return [item for item in data if isinstance(item, dict)]

    def _write_document(self, document: list[ConversationAddress]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreIOError(f"No se pudo escribir {self._path}: {exc}") from exc

    def _quarantine(self) -> None:
        if not self._path.exists():
            return
        target = self._path.with_name(f"{self._path.name}.corrupt")
        try:
            os.replace(self._path, target)
        except OSError:
            logger.exception("store.quarantine_failed", extra={"path": str(self._path)})


def _find(document: list[ConversationAddress], conversation_id: str) -> ConversationAddress | None:
    for address in document:
        if address_conversation_id(address) == conversation_id:
            return address
    return None
