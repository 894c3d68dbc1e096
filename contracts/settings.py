"""Settings (callscreen.yaml) schema — Pydantic models.

Every evaluation works against one immutable Settings snapshot, so a
screening pass sees a consistent view even while the file is being edited.
"""

from __future__ import annotations

from datetime import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Longest look-back a history window may ask for.
MAX_HISTORY_DAYS = 30


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Platform and permissions ────────────────────────────────────────


class PlatformConfig(_Section):
    verification_supported: bool = True


class PermissionsConfig(_Section):
    contacts: bool = True
    history: bool = True


# ── Built-in checkers ───────────────────────────────────────────────


class VerificationConfig(_Section):
    enabled: bool = False
    exclusive: bool = False
    include_unverified: bool = False


class ContactsConfig(_Section):
    enabled: bool = False
    exclusive: bool = False


class RepeatedConfig(_Section):
    enabled: bool = False
    times: int = Field(default=1, ge=1)
    window_minutes: int = Field(default=5, ge=1, le=MAX_HISTORY_DAYS * 24 * 60)


class DialedConfig(_Section):
    enabled: bool = False
    window_days: int = Field(default=3, ge=1, le=MAX_HISTORY_DAYS)


class QuietHoursConfig(_Section):
    enabled: bool = False
    start: time = time(0, 0)
    end: time = time(0, 0)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _sexagesimal(cls, v: Any) -> Any:
        # YAML 1.1 reads an unquoted 22:30 as the base-60 integer 1350.
        if isinstance(v, int) and not isinstance(v, bool):
            return time(v // 60 % 24, v % 60)
        return v


class RecentAppsConfig(_Section):
    apps: list[str] = []
    window_minutes: int = Field(default=5, ge=1)


# ── Local data sources ──────────────────────────────────────────────


class DirectoryEntry(_Section):
    name: str
    number: str


class DirectoryConfig(_Section):
    contacts: list[DirectoryEntry] = []


class StorageConfig(_Section):
    rules_db: str = "callscreen.db"


class AuditConfig(_Section):
    path: str = "audit.jsonl"


# ── Root settings ───────────────────────────────────────────────────


class Settings(_Section):
    platform: PlatformConfig = PlatformConfig()
    permissions: PermissionsConfig = PermissionsConfig()
    verification: VerificationConfig = VerificationConfig()
    contacts: ContactsConfig = ContactsConfig()
    repeated: RepeatedConfig = RepeatedConfig()
    dialed: DialedConfig = DialedConfig()
    quiet_hours: QuietHoursConfig = QuietHoursConfig()
    recent_apps: RecentAppsConfig = RecentAppsConfig()
    directory: DirectoryConfig = DirectoryConfig()
    storage: StorageConfig = StorageConfig()
    audit: AuditConfig = AuditConfig()
    strings: dict[str, str] = {}    # reason-text overrides, keyed like DEFAULT_STRINGS
