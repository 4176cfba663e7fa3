import pytest

from poster_studio.config import (
    PollingConfig,
    _parse_allowed_origins,
    get_settings,
)


def test_parse_allowed_origins_with_paths() -> None:
    raw = "https://example.com/app, https://demo.com/sub"
    assert _parse_allowed_origins(raw) == [
        "https://example.com",
        "https://demo.com",
    ]


def test_parse_allowed_origins_with_wildcard() -> None:
    assert _parse_allowed_origins("*") == ["*"]


def test_parse_allowed_origins_deduplicates_and_handles_empty() -> None:
    raw = " https://example.com/ , https://example.com ,"
    assert _parse_allowed_origins(raw) == ["https://example.com"]


def test_parse_allowed_origins_defaults_to_wildcard() -> None:
    assert _parse_allowed_origins("") == ["*"]


def test_polling_schedules_grow_with_resolution() -> None:
    config = PollingConfig()
    one, two, four = (config.schedule_for(res) for res in ("1K", "2K", "4K"))
    assert one.interval < two.interval < four.interval
    assert one.max_attempts < two.max_attempts < four.max_attempts


def test_polling_schedule_rejects_unknown_resolution() -> None:
    with pytest.raises(ValueError):
        PollingConfig().schedule_for("8K")


def test_polling_overrides_from_env(monkeypatch) -> None:
    monkeypatch.setenv("POLL_4K_INTERVAL", "9")
    monkeypatch.setenv("POLL_4K_MAX_ATTEMPTS", "200")
    monkeypatch.setenv("POLL_1K_MAX_ATTEMPTS", "not-a-number")

    config = PollingConfig.from_env()

    assert config.schedule_for("4K").interval == 9.0
    assert config.schedule_for("4K").max_attempts == 200
    assert config.schedule_for("1K").max_attempts == 60


def test_settings_read_storage_and_provider_env(monkeypatch) -> None:
    monkeypatch.setenv("R2_ENDPOINT", "https://account.r2.cloudflarestorage.com")
    monkeypatch.setenv("R2_ACCESS_KEY_ID", "key")
    monkeypatch.setenv("R2_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setenv("R2_BUCKET", "temp")
    monkeypatch.setenv("TEMP_ASSET_PREFIX", "/scratch/")
    monkeypatch.setenv("KIE_AI_API_KEY", "kie-key")
    monkeypatch.setenv("KIE_API_BASE", "https://kie.example/api/v1/jobs/")
    monkeypatch.setenv("MAX_ASSET_BYTES", "oops")

    settings = get_settings()

    assert settings.storage.is_configured
    assert settings.storage.temp_prefix == "scratch"
    assert settings.provider.api_key == "kie-key"
    assert settings.provider.api_base == "https://kie.example/api/v1/jobs"
    assert settings.limits.max_asset_bytes == 10 * 1024 * 1024
