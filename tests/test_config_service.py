"""Test the stored sync policy"""
import pytest
from pydantic import ValidationError

from gazette_sync.db.models import SystemSetting
from gazette_sync.services.config_service import SYNC_CONFIG_KEY, ConfigService, SyncConfig


@pytest.mark.asyncio
async def test_defaults_when_never_saved(session):
    config = await ConfigService(session).load_sync_config()

    assert config.auto_sync is True
    assert config.sync_interval_hours == 24
    assert config.default_tribunal == "all"
    assert config.search_days_back == 30
    assert config.api_timeout_seconds == 30
    assert config.max_retries == 3
    assert config.lawyers_to_monitor == []


@pytest.mark.asyncio
async def test_save_and_reload(session):
    """Test a saved policy is read back as saved"""
    service = ConfigService(session)
    await service.save_sync_config(
        {"auto_sync": False, "sync_interval_hours": 6, "lawyers_to_monitor": ["Pedro Rodrigues"]},
        updated_by="admin@escritorio.com.br",
    )

    config = await service.load_sync_config()
    assert config.auto_sync is False
    assert config.sync_interval_hours == 6
    assert config.lawyers_to_monitor == ["Pedro Rodrigues"]

    setting = await session.get(SystemSetting, SYNC_CONFIG_KEY)
    assert setting.updated_by == "admin@escritorio.com.br"


@pytest.mark.asyncio
async def test_invalid_input_is_rejected(session):
    with pytest.raises(ValidationError):
        await ConfigService(session).save_sync_config({"sync_interval_hours": 0})
    with pytest.raises(ValidationError):
        await ConfigService(session).save_sync_config({"max_retries": -1})


@pytest.mark.asyncio
async def test_invalid_stored_value_falls_back_to_defaults(session):
    """Test a hand-edited broken row does not break syncing"""
    session.add(SystemSetting(key=SYNC_CONFIG_KEY, value={"search_days_back": "muitos"}))
    await session.commit()

    config = await ConfigService(session).load_sync_config()
    assert config == SyncConfig()


def test_monitored_attorneys_normalized_and_deduplicated():
    """Test names and OAB objects are normalized, blanks and duplicates dropped"""
    config = SyncConfig(lawyers_to_monitor=[
        "  pedro  rodrigues montalvao neto ",
        {"name": "Maria Souza", "oab_number": "123456", "oab_uf": "sp"},
        "PEDRO RODRIGUES MONTALVAO NETO",
        "   ",
    ])

    attorneys = config.monitored_attorneys()

    assert [a.name for a in attorneys] == ["PEDRO RODRIGUES MONTALVAO NETO", "MARIA SOUZA"]
    assert attorneys[1].oab_number == "123456"
    assert attorneys[1].oab_uf == "SP"
    assert len(config.lawyers_to_monitor) == 3
