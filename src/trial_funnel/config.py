import os
from dataclasses import dataclass


_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class FunnelConfig:
    api_url: str
    api_token: str
    timeout: float
    refusal_archive_days: int
    success_archive_days: int
    background_refresh: bool
    notify_url: str
    log_level: str
    log_json: bool = False


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def get_funnel_config() -> FunnelConfig:
    return FunnelConfig(
        api_url=os.getenv("TRIAL_FUNNEL_API_URL", "http://localhost:5000").rstrip("/"),
        api_token=os.getenv("TRIAL_FUNNEL_API_TOKEN", ""),
        timeout=_float_env("TRIAL_FUNNEL_TIMEOUT", 10.0),
        refusal_archive_days=_int_env("TRIAL_FUNNEL_REFUSAL_ARCHIVE_DAYS", 5),
        success_archive_days=_int_env("TRIAL_FUNNEL_SUCCESS_ARCHIVE_DAYS", 3),
        background_refresh=os.getenv("TRIAL_FUNNEL_BACKGROUND_REFRESH", "true").strip().lower() in _TRUTHY,
        notify_url=os.getenv("TRIAL_FUNNEL_NOTIFY_URL", ""),
        log_level=os.getenv("TRIAL_FUNNEL_LOG_LEVEL", "INFO").upper(),
        log_json=os.getenv("TRIAL_FUNNEL_LOG_JSON", "false").strip().lower() in _TRUTHY,
    )
