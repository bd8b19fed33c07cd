"""Sync policy stored in system_settings and re-read on every run"""
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gazette_sync.db.models import SystemSetting, utcnow
from gazette_sync.services.gazette_records import MonitoredAttorney

logger = logging.getLogger(__name__)

SYNC_CONFIG_KEY = "djen_config"


class AttorneyEntry(BaseModel):
    """Attorney with optional OAB registration"""
    name: str
    oab_number: Optional[str] = None
    oab_uf: Optional[str] = None


class SyncConfig(BaseModel):
    """User-editable DJEN sync policy"""
    auto_sync: bool = True
    sync_interval_hours: float = Field(24, gt=0)
    default_tribunal: str = "all"
    search_days_back: int = Field(30, ge=0)
    api_timeout_seconds: float = Field(30, gt=0)
    max_retries: int = Field(3, ge=0)
    lawyers_to_monitor: List[Union[str, AttorneyEntry]] = Field(default_factory=list)

    @field_validator("lawyers_to_monitor")
    @classmethod
    def drop_blank_names(cls, value):
        cleaned = []
        for entry in value:
            name = entry if isinstance(entry, str) else entry.name
            if name and name.strip():
                cleaned.append(entry)
        return cleaned

    def monitored_attorneys(self) -> List[MonitoredAttorney]:
        """Normalized attorneys in configured order, duplicates removed"""
        attorneys: List[MonitoredAttorney] = []
        seen = set()
        for entry in self.lawyers_to_monitor:
            raw = entry if isinstance(entry, str) else entry.model_dump()
            attorney = MonitoredAttorney.from_config(raw)
            if attorney.name in seen:
                continue
            seen.add(attorney.name)
            attorneys.append(attorney)
        return attorneys


class ConfigService:
    """Read/write access to the sync policy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_setting(self, key: str) -> Optional[SystemSetting]:
        result = await self.session.execute(
            select(SystemSetting).where(SystemSetting.key == key)
        )
        return result.scalar_one_or_none()

    async def load_sync_config(self) -> SyncConfig:
        """Stored config, or defaults when unset or unreadable"""
        setting = await self._get_setting(SYNC_CONFIG_KEY)
        if setting is None or not isinstance(setting.value, dict):
            return SyncConfig()

        try:
            return SyncConfig.model_validate(setting.value)
        except ValidationError as e:
            logger.warning(f"Stored {SYNC_CONFIG_KEY} is invalid, using defaults: {e}")
            return SyncConfig()

    async def save_sync_config(
        self,
        config: Union[SyncConfig, Dict[str, Any]],
        updated_by: Optional[str] = None,
    ) -> SyncConfig:
        """Validate and persist the sync policy. Raises ValidationError on bad input."""
        if not isinstance(config, SyncConfig):
            config = SyncConfig.model_validate(config)

        value = config.model_dump(mode="json")
        setting = await self._get_setting(SYNC_CONFIG_KEY)
        if setting is None:
            setting = SystemSetting(key=SYNC_CONFIG_KEY, value=value, updated_by=updated_by)
            self.session.add(setting)
        else:
            setting.value = value
            setting.updated_by = updated_by
            setting.updated_at = utcnow()

        await self.session.commit()
        logger.info(f"Sync config updated by {updated_by or 'system'}")
        return config
