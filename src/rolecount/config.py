from __future__ import annotations

from typing import Annotated, Literal

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class ChannelCounter(BaseModel):
    role_id: str
    channel_id: str
    name_format: str


def _split_list(value: object, env_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, int):
        return [str(value)]
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    raise ValueError(f"{env_name} must be comma separated string or list")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ROLECOUNT_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    guild_id: str = ""
    ignored_role_id: str = ""
    verified_role_id: str = ""
    skip_managed_roles: bool = True

    count_roles: Annotated[list[str], NoDecode] = Field(default_factory=list)
    channel_counters: Annotated[list[ChannelCounter], NoDecode] = Field(default_factory=list)
    total_member_channel_id: str = ""
    total_member_name_format: str = "Members: {count}"

    interval_minutes: int = Field(default=5, ge=1)
    cron_schedule: str | None = None

    allowed_roles: Annotated[list[str], NoDecode] = Field(default_factory=list)
    allowed_channels: Annotated[list[str], NoDecode] = Field(default_factory=list)

    snapshot_ttl_seconds: float = 3600.0
    fetch_timeout_seconds: float | None = 60.0
    rename_delay_seconds: float = 2.0
    command_cooldown_seconds: float = 8.0

    percent_precision: int = Field(default=2, ge=2, le=3)
    reply_style: Literal["text", "embed"] = "text"
    embed_footer_text: str = ""

    @field_validator("count_roles", mode="before")
    @classmethod
    def _parse_count_roles(cls, value: object) -> list[str]:
        return _split_list(value, "ROLECOUNT_COUNT_ROLES")

    @field_validator("allowed_roles", mode="before")
    @classmethod
    def _parse_allowed_roles(cls, value: object) -> list[str]:
        return _split_list(value, "ROLECOUNT_ALLOWED_ROLES")

    @field_validator("allowed_channels", mode="before")
    @classmethod
    def _parse_allowed_channels(cls, value: object) -> list[str]:
        return _split_list(value, "ROLECOUNT_ALLOWED_CHANNELS")

    @field_validator("cron_schedule", mode="before")
    @classmethod
    def _parse_cron(cls, value: object) -> object:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("ROLECOUNT_CRON_SCHEDULE must be a crontab string")
        value = value.strip()
        if not value:
            return None
        try:
            CronTrigger.from_crontab(value)
        except ValueError as exc:
            raise ValueError(f"ROLECOUNT_CRON_SCHEDULE is not a valid crontab: {exc}") from exc
        return value

    @field_validator("channel_counters", mode="before")
    @classmethod
    def _parse_counters(cls, value: object) -> object:
        # role_id:channel_id:name format, entries separated by ";"
        if value is None:
            return []
        if not isinstance(value, str):
            return value
        counters: list[dict[str, str]] = []
        for chunk in value.split(";"):
            chunk = chunk.strip()
            if not chunk:
                continue
            parts = chunk.split(":", 2)
            if len(parts) != 3 or not all(p.strip() for p in parts):
                raise ValueError(
                    "ROLECOUNT_CHANNEL_COUNTERS entries must look like role_id:channel_id:name"
                )
            role_id, channel_id, name_format = parts
            counters.append(
                {
                    "role_id": role_id.strip(),
                    "channel_id": channel_id.strip(),
                    "name_format": name_format.strip(),
                }
            )
        return counters


settings = Settings()
