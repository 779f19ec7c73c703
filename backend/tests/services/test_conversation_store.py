"""Pruebas del almacén de direcciones de conversación."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from motion_bridge.services.conversation_store import ConversationAddressStore


def _address(conversation_id: str, user: str = "Ana") -> dict:
    return {
        "id": "act-1",
        "channelId": "skype",
        "user": {"id": f"29:{user.lower()}", "name": user},
        "conversation": {"id": conversation_id},
        "bot": {"id": "28:bot", "name": "Bot"},
        "serviceUrl": "https://smba.test/apis/",
    }


@pytest.fixture(name="store_path")
def fixture_store_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "conversations.json"


async def test_upsert_then_lookup_returns_same_address(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)
    address = _address("c1")

    created = await store.upsert("c1", address)

    assert created is True
    assert await store.lookup("c1") == address
    assert json.loads(store_path.read_text(encoding="utf-8")) == [address]


async def test_second_upsert_keeps_first_address(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)
    original = _address("c1", user="Ana")

    await store.upsert("c1", original)
    created = await store.upsert("c1", _address("c1", user="Beto"))

    assert created is False
    assert await store.lookup("c1") == original


async def test_lookup_unknown_returns_none(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)
    await store.upsert("c1", _address("c1"))

    assert await store.lookup("zzz") is None


async def test_lookup_on_missing_document_returns_none(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)

    assert await store.lookup("c1") is None
    assert not store_path.exists()


async def test_lookup_on_corrupt_document_returns_none(store_path: Path) -> None:
    store_path.parent.mkdir(parents=True)
    store_path.write_text("{not json", encoding="utf-8")
    store = ConversationAddressStore(store_path)

    assert await store.lookup("c1") is None


async def test_initialize_creates_empty_document(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)

    await store.initialize()

    assert json.loads(store_path.read_text(encoding="utf-8")) == []


async def test_initialize_replaces_corrupt_document(store_path: Path) -> None:
    store_path.parent.mkdir(parents=True)
    store_path.write_text('{"conversation": "not a list"}', encoding="utf-8")
    store = ConversationAddressStore(store_path)

    await store.initialize()

    assert json.loads(store_path.read_text(encoding="utf-8")) == []
    quarantined = store_path.with_name("conversations.json.corrupt")
    assert quarantined.read_text(encoding="utf-8") == '{"conversation": "not a list"}'


async def test_initialize_keeps_valid_document(store_path: Path) -> None:
    store_path.parent.mkdir(parents=True)
    existing = [_address("c1")]
    store_path.write_text(json.dumps(existing), encoding="utf-8")
    store = ConversationAddressStore(store_path)

    await store.initialize()

    assert await store.lookup("c1") == existing[0]


async def test_concurrent_upserts_for_different_ids_are_all_persisted(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)
    ids = [f"conv-{index}" for index in range(25)]

    results = await asyncio.gather(*(store.upsert(cid, _address(cid)) for cid in ids))

    assert all(results)
    document = json.loads(store_path.read_text(encoding="utf-8"))
    assert sorted(item["conversation"]["id"] for item in document) == sorted(ids)


async def test_concurrent_upserts_for_same_id_keep_first_writer(store_path: Path) -> None:
    store = ConversationAddressStore(store_path)
    first = _address("c1", user="Ana")
    second = _address("c1", user="Beto")

    results = await asyncio.gather(store.upsert("c1", first), store.upsert("c1", second))

    assert results == [True, False]
    assert await store.lookup("c1") == first
    assert len(json.loads(store_path.read_text(encoding="utf-8"))) == 1


async def test_records_skip_entries_without_conversation_id(store_path: Path) -> None:
    store_path.parent.mkdir(parents=True)
    store_path.write_text(json.dumps([_address("c1"), {"user": {"id": "x"}}]), encoding="utf-8")
    store = ConversationAddressStore(store_path)

    records = await store.records()

    assert [record.conversation_id for record in records] == ["c1"]
