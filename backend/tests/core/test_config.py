"""Pruebas de la configuración y del arranque de la aplicación."""

from __future__ import annotations

import json

import pytest

from motion_bridge.core.config import ConfigInvalid, Settings
from motion_bridge.main import create_app


def _settings(**overrides) -> Settings:
    base = {
        "_env_file": None,
        "motion_url": "https://motion.test/api/skype/incoming",
        "microsoft_app_id": "app-id",
        "microsoft_app_password": "app-secret",
    }
    base.update(overrides)
    return Settings(**base)


def test_validate_required_accepts_complete_settings() -> None:
    _settings().validate_required()


def test_validate_required_lists_missing_values() -> None:
    settings = _settings(motion_url=None, microsoft_app_password=None)

    with pytest.raises(ConfigInvalid) as exc_info:
        settings.validate_required()

    assert "BRIDGE_MOTION_URL" in str(exc_info.value)
    assert "BRIDGE_MICROSOFT_APP_PASSWORD" in str(exc_info.value)


def test_validate_required_rejects_partial_basic_auth() -> None:
    with pytest.raises(ConfigInvalid):
        _settings(motion_username="svc").validate_required()


def test_motion_base_url_is_derived_from_forward_url() -> None:
    assert _settings().motion_base_url == "https://motion.test"
    assert _settings(motion_domain="https://desk.test/").motion_base_url == "https://desk.test"
    assert _settings(motion_url="not-a-url").motion_base_url is None


def test_bot_framework_env_names_are_accepted(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MICROSOFT_APP_ID", "from-env")

    settings = Settings(_env_file=None)

    assert settings.microsoft_app_id == "from-env"


async def test_lifespan_fails_fast_without_credentials(tmp_path) -> None:
    app = create_app(_settings(microsoft_app_id=None, store_path=str(tmp_path / "c.json")))

    with pytest.raises(ConfigInvalid):
        async with app.router.lifespan_context(app):
            pass


async def test_lifespan_initializes_empty_store(tmp_path) -> None:
    store_path = tmp_path / "data" / "conversations.json"
    app = create_app(_settings(store_path=str(store_path)))

    async with app.router.lifespan_context(app):
        assert json.loads(store_path.read_text(encoding="utf-8")) == []
