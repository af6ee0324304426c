from __future__ import annotations

from functools import lru_cache
from datetime import date
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HolidayConfig(BaseModel):
    name: str
    start: str  # ISO date
    end: str | None = None  # Optional inclusive end date

    def as_date_range(self) -> tuple[date, date]:
        """Return the holiday as a concrete date range."""
        start_date = date.fromisoformat(self.start)
        end_date = date.fromisoformat(self.end) if self.end else start_date
        return start_date, end_date


class HolidayCalendarConfig(BaseModel):
    # Saturday/Sunday count as holidays unless a richer calendar says otherwise
    weekend_is_holiday: bool = True
    holidays: list[HolidayConfig] = Field(default_factory=list)


class RecurrenceConfig(BaseModel):
    scan_limit: int = Field(default=366, ge=1)
    occurrence_limit: int = Field(default=200, ge=1)
    preview_count: int = Field(default=20, ge=1)


class AppConfig(BaseModel):
    holiday_calendar: HolidayCalendarConfig = Field(default_factory=HolidayCalendarConfig)
    recurrence: RecurrenceConfig = Field(default_factory=RecurrenceConfig)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    timezone: str = Field(default="UTC", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    config_path: str = Field(default="config.yaml", alias="RECURRENCE_CONFIG_PATH")

    _app_config: AppConfig | None = None
    _app_config_mtime: float | None = None

    def load_app_config(self, *, force_reload: bool = False) -> AppConfig:
        config_file = Path(self.config_path)
        if not config_file.exists():
            self._app_config = AppConfig()
            self._app_config_mtime = None
            return self._app_config

        current_mtime = config_file.stat().st_mtime
        if not force_reload and self._app_config and self._app_config_mtime == current_mtime:
            return self._app_config

        with config_file.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}

        self._app_config = AppConfig.model_validate(data)
        self._app_config_mtime = current_mtime
        return self._app_config

    def reload_app_config(self) -> AppConfig:
        """Force a reload of the application config from disk."""
        return self.load_app_config(force_reload=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
