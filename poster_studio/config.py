from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List
from urllib.parse import urlparse

RESOLUTIONS = ("1K", "2K", "4K")


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is None:
            continue
        text = value.strip()
        if text:
            return text
    return None


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value.rstrip("/")

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class StorageConfig:
    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str = "auto"
    bucket: str | None = None
    public_base: str | None = None
    templates_public_base: str | None = None
    temp_prefix: str = "generation-temp"

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key and self.bucket)

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls(
            endpoint=_env("R2_ENDPOINT", "S3_ENDPOINT"),
            access_key=_env("R2_ACCESS_KEY_ID", "S3_ACCESS_KEY"),
            secret_key=_env("R2_SECRET_ACCESS_KEY", "S3_SECRET_KEY"),
            region=_env("R2_REGION", "S3_REGION") or "auto",
            bucket=_env("R2_BUCKET", "S3_BUCKET"),
            public_base=_env("R2_PUBLIC_BASE", "S3_PUBLIC_BASE"),
            templates_public_base=_env("TEMPLATES_PUBLIC_BASE"),
            temp_prefix=(_env("TEMP_ASSET_PREFIX") or "generation-temp").strip("/"),
        )


@dataclass
class ProviderConfig:
    api_key: str | None = None
    api_base: str = "https://api.kie.ai/api/v1/jobs"
    model: str = "nano-banana-pro"
    create_timeout: float = 30.0
    poll_timeout: float = 15.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        return cls(
            api_key=_env("KIE_AI_API_KEY"),
            api_base=(_env("KIE_API_BASE") or "https://api.kie.ai/api/v1/jobs").rstrip("/"),
            model=_env("KIE_MODEL") or "nano-banana-pro",
            create_timeout=_as_float(os.getenv("KIE_CREATE_TIMEOUT"), 30.0),
            poll_timeout=_as_float(os.getenv("KIE_POLL_TIMEOUT"), 15.0),
        )


@dataclass
class SupabaseConfig:
    url: str | None = None
    service_key: str | None = None
    credit_rpc: str = "check_and_debit_credits"
    templates_table: str = "reference_templates"

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_key)

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=_env("SUPABASE_URL"),
            service_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            credit_rpc=_env("CREDIT_DEBIT_RPC") or "check_and_debit_credits",
            templates_table=_env("TEMPLATES_TABLE") or "reference_templates",
        )


@dataclass
class GenerationLimits:
    max_prompt_chars: int = 5000
    max_asset_bytes: int = 10 * 1024 * 1024
    prompt_char_ceiling: int = 4500
    max_logos: int = 5
    prompt_language: str = "French"
    max_body_bytes: int = 80 * 1024 * 1024

    @classmethod
    def from_env(cls) -> "GenerationLimits":
        return cls(
            max_prompt_chars=max(_as_int(os.getenv("MAX_PROMPT_CHARS"), 5000), 1),
            max_asset_bytes=max(_as_int(os.getenv("MAX_ASSET_BYTES"), 10 * 1024 * 1024), 1),
            prompt_char_ceiling=max(_as_int(os.getenv("PROMPT_CHAR_CEILING"), 4500), 500),
            max_logos=5,
            prompt_language=_env("PROMPT_LANGUAGE") or "French",
            max_body_bytes=max(_as_int(os.getenv("MAX_BODY_BYTES"), 80 * 1024 * 1024), 0),
        )


@dataclass(frozen=True)
class ResolutionSchedule:
    interval: float
    max_attempts: int


_DEFAULT_SCHEDULES: Dict[str, ResolutionSchedule] = {
    "1K": ResolutionSchedule(interval=3.0, max_attempts=60),
    "2K": ResolutionSchedule(interval=4.0, max_attempts=90),
    "4K": ResolutionSchedule(interval=6.0, max_attempts=150),
}


@dataclass
class PollingConfig:
    schedules: Dict[str, ResolutionSchedule] = field(
        default_factory=lambda: dict(_DEFAULT_SCHEDULES)
    )
    ramp_attempts: int = 10
    ramp_start: float = 1.0
    ramp_step: float = 0.5
    ramp_cap: float = 5.0
    max_consecutive_errors: int = 5
    error_backoff_cap: float = 30.0

    def schedule_for(self, resolution: str) -> ResolutionSchedule:
        try:
            return self.schedules[resolution]
        except KeyError:
            raise ValueError(f"Unsupported resolution: {resolution}") from None

    @classmethod
    def from_env(cls) -> "PollingConfig":
        schedules: Dict[str, ResolutionSchedule] = {}
        for resolution, default in _DEFAULT_SCHEDULES.items():
            schedules[resolution] = ResolutionSchedule(
                interval=max(_as_float(os.getenv(f"POLL_{resolution}_INTERVAL"), default.interval), 0.0),
                max_attempts=max(
                    _as_int(os.getenv(f"POLL_{resolution}_MAX_ATTEMPTS"), default.max_attempts), 1
                ),
            )
        return cls(schedules=schedules)


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    log_level: str
    storage: StorageConfig
    provider: ProviderConfig
    supabase: SupabaseConfig
    limits: GenerationLimits
    polling: PollingConfig
    debug: bool = False


@lru_cache()
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development")
    return Settings(
        environment=environment,
        allowed_origins=_parse_allowed_origins(os.getenv("ALLOWED_ORIGINS", "*")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        storage=StorageConfig.from_env(),
        provider=ProviderConfig.from_env(),
        supabase=SupabaseConfig.from_env(),
        limits=GenerationLimits.from_env(),
        polling=PollingConfig.from_env(),
        debug=_as_bool(os.getenv("DEBUG"), environment == "development"),
    )
