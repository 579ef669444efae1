from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .performance import PerformanceProfile, ProfileSpec, resolve_profile


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")
_BANK_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


class SessionConfig(BaseModel):
    """
    Fully-resolved, immutable settings for one browser session.

    Build with `build_session_config()`; derive variants with `with_overrides()` (never mutate).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    headless: bool = True
    timeout_ms: int = Field(default=30_000, gt=0)
    debug_pauses: bool = False
    retry_limit: int = Field(default=3, ge=0)
    performance_profile: PerformanceProfile = Field(default_factory=lambda: resolve_profile("BALANCED"))

    # Pause after a successful click/fill, and between element-level retries.
    action_delay_ms: int = Field(default=300, ge=0)
    retry_backoff_ms: int = Field(default=2_000, ge=0)
    # Pause between whole login attempts (fresh session each time).
    retry_delay_ms: int = Field(default=3_000, ge=0)
    verify_timeout_ms: int = Field(default=10_000, gt=0)
    verify_settle_ms: int = Field(default=1_500, ge=0)

    slow_mo_ms: int = Field(default=0, ge=0)
    viewport_width: int = 1366
    viewport_height: int = 768
    locale: str = "es-VE"
    timezone_id: str = "America/Caracas"
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    accept_language: str = "es-ES,es;q=0.9,en;q=0.8"

    debug_dir: str = ""
    log_dir: str = ""

    @field_validator("performance_profile", mode="before")
    @classmethod
    def _resolve_profile(cls, value: Any) -> PerformanceProfile:
        return resolve_profile(value)

    def with_overrides(self, **changes: Any) -> "SessionConfig":
        return type(self).model_validate({**self.model_dump(), **changes})


DEFAULT_SESSION_CONFIG = SessionConfig()


def build_session_config(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    base: Optional[SessionConfig] = None,
) -> SessionConfig:
    """
    Merge caller overrides over defaults once and validate.

    Unknown keys are rejected so a typo can't silently fall back to a default.
    """
    start = base or DEFAULT_SESSION_CONFIG
    if not overrides:
        return start
    return start.with_overrides(**dict(overrides))


def _session_from_env() -> dict:
    env_map = {
        "headless": ("BANKER_HEADLESS", "bool"),
        "timeout_ms": ("BANKER_TIMEOUT_MS", "int"),
        "debug_pauses": ("BANKER_DEBUG_PAUSES", "bool"),
        "retry_limit": ("BANKER_RETRY_LIMIT", "int"),
        "performance_profile": ("BANKER_PERFORMANCE_PROFILE", "str"),
        "debug_dir": ("BANKER_DEBUG_DIR", "str"),
        "log_dir": ("BANKER_LOG_DIR", "str"),
    }
    out: dict = {}
    for key, (var, kind) in env_map.items():
        raw = (os.getenv(var, "") or "").strip()
        if not raw:
            continue
        if kind == "bool":
            out[key] = _env_bool(var)
        elif kind == "int":
            out[key] = int(raw)
        else:
            out[key] = raw
    return out


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; YAML remains an optional override.
    """
    banks: dict = {}
    if os.getenv("BNC_CARD") or os.getenv("BNC_ID"):
        banks["bnc"] = {
            "credentials": {
                "card": os.getenv("BNC_CARD", ""),
                "id": os.getenv("BNC_ID", ""),
                "password": os.getenv("BNC_PASSWORD", ""),
            },
        }
    if os.getenv("BANESCO_USERNAME"):
        banks["banesco"] = {
            "credentials": {
                "username": os.getenv("BANESCO_USERNAME", ""),
                "password": os.getenv("BANESCO_PASSWORD", ""),
            },
            "security_questions": os.getenv("BANESCO_SECURITY_QUESTIONS", ""),
        }

    return {
        "session": _session_from_env(),
        "banks": banks,
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/banker.log"),
        },
        "export": {
            "dir": os.getenv("EXPORT_DIR", "data/exports"),
        },
    }


class BankConfig(BaseModel):
    credentials: dict[str, str] = Field(default_factory=dict, repr=False)
    # "keyword:answer,keyword:answer" or a mapping; order is match priority.
    security_questions: Union[str, dict[str, str]] = Field(default="", repr=False)
    auth_profile: Optional[ProfileSpec] = None
    scraping_profile: Optional[ProfileSpec] = None
    accounts: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/banker.log"


class ExportConfig(BaseModel):
    dir: str = "data/exports"


class AppConfig(BaseModel):
    session: SessionConfig = Field(default_factory=SessionConfig)
    banks: dict[str, BankConfig] = Field(default_factory=dict)
    logging: LoggingConfig = LoggingConfig()
    export: ExportConfig = ExportConfig()

    @model_validator(mode="after")
    def _validate_bank_slugs(self) -> "AppConfig":
        for slug in self.banks:
            if not _BANK_SLUG_RE.match(slug):
                raise ValueError(f"banks.{slug}: bank keys must be slugs like 'bnc' (lowercase, digits, hyphen)")
        return self

    def bank(self, slug: str) -> BankConfig:
        key = (slug or "").strip().lower()
        if key not in self.banks:
            raise KeyError(f"No configuration for bank {slug!r}. Configured: {', '.join(sorted(self.banks)) or '(none)'}")
        return self.banks[key]


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
