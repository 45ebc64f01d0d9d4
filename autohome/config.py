"""Application configuration powered by Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Final

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized configuration object with environment fallbacks."""

    model_config = SettingsConfigDict(env_prefix="AUTOHOME_", env_file=".env", extra="allow")

    # App
    app_name: str = "Autohome"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8421
    debug: bool = False
    log_level: str = Field(default="info")

    # Home / zones
    home_id: str = Field(default="")
    zone_ids: str = Field(default="")
    timezone: str = Field(default="UTC")

    # Remote configuration authority (empty url = local configuration only)
    remote_url: str = Field(default="")
    remote_api_key: str = Field(default="")
    remote_timeout_s: float = Field(default=15.0)

    # MQTT broker (empty broker = no subscription channel, telemetry dropped)
    mqtt_broker: str = Field(default="")
    mqtt_port: int = Field(default=1883)
    mqtt_username: str | None = Field(default=None)
    mqtt_password: str | None = Field(default=None)
    mqtt_use_tls: bool = Field(default=False)

    # Control loop timing
    cycle_seconds: int = Field(default=60, ge=1)
    refresh_seconds: int = Field(default=300, ge=1)
    shutdown_timeout_s: float = Field(default=5.0, gt=0)

    # Telemetry bounds
    telemetry_max_pending: int = Field(default=64, ge=1)
    telemetry_timeout_s: float = Field(default=5.0, gt=0)

    # Local persistence
    static_config_path: str = Field(default="zones.json")
    snapshot_path: str = Field(default="autohome_snapshot.json")

    # Hardware
    driver: str = Field(default="simulated")

    @field_validator("remote_url", mode="before")
    @classmethod
    def _strip_remote_url(cls, v: object) -> object:
        """Treat a blank url (env var set but empty) as no remote."""
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remote_enabled(self) -> bool:
        """Return ``True`` when a remote configuration authority is configured."""

        return bool(self.remote_url)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def mqtt_enabled(self) -> bool:
        return bool(self.mqtt_broker)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def managed_zone_ids(self) -> list[str]:
        """Zone ids parsed from the comma-separated ``zone_ids`` setting."""

        return [z.strip() for z in self.zone_ids.split(",") if z.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


SETTINGS: Final[Settings] = get_settings()
