from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DAILY_REQUEST_LIMIT = 1000
REQUEST_WARNING_THRESHOLD = 900


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Config:
    euler_api_key: str
    discord_token: str
    alert_channel_id: int
    owner_id: int | None
    tracked_accounts: tuple[str, ...]
    max_reconnect_attempts: int
    reconnect_delay_sec: int
    euler_ws_url: str
    state_file: Path
    request_counter_file: Path
    log_dir: Path | None
    debug_logs: bool
    daily_request_limit: int = DAILY_REQUEST_LIMIT
    request_warning_threshold: int = REQUEST_WARNING_THRESHOLD


def _get_required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def _parse_id(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got: {raw!r}") from exc


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got: {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be > 0, got: {value}")
    return value


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"{name} must be a boolean value, got: {raw!r}")


def _resolve_path_env_relative(name: str, default: str, base_dir: Path) -> Path:
    raw_value = os.getenv(name, default).strip() or default
    path = Path(raw_value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def parse_account_list(raw: str) -> tuple[str, ...]:
    accounts: list[str] = []
    for item in raw.split(","):
        account = item.strip()
        if account and account not in accounts:
            accounts.append(account)
    return tuple(accounts)


def load_config(env_file: str | None = ".env") -> Config:
    if env_file:
        load_dotenv(env_file)
        env_dir = Path(env_file).expanduser().resolve().parent
    else:
        load_dotenv()
        env_dir = Path.cwd()

    euler_api_key = _get_required("EULER_API_KEY")
    discord_token = _get_required("DISCORD_TOKEN")
    alert_channel_id = _parse_id("ALERT_CHANNEL_ID", _get_required("ALERT_CHANNEL_ID"))

    owner_raw = os.getenv("OWNER_ID", "").strip()
    owner_id = _parse_id("OWNER_ID", owner_raw) if owner_raw else None

    tracked_accounts = parse_account_list(os.getenv("TIKTOK_USERS", ""))
    if not tracked_accounts:
        raise ConfigError("No TikTok usernames found in TIKTOK_USERS")

    log_dir_raw = os.getenv("LOG_DIR", "").strip()
    log_dir = _resolve_path_env_relative("LOG_DIR", log_dir_raw, env_dir) if log_dir_raw else None

    return Config(
        euler_api_key=euler_api_key,
        discord_token=discord_token,
        alert_channel_id=alert_channel_id,
        owner_id=owner_id,
        tracked_accounts=tracked_accounts,
        max_reconnect_attempts=_get_int("MAX_RECONNECT_ATTEMPTS", 4),
        reconnect_delay_sec=_get_int("RECONNECT_DELAY_SEC", 90),
        euler_ws_url=os.getenv("EULER_WS_URL", "wss://ws.eulerstream.com").strip()
        or "wss://ws.eulerstream.com",
        state_file=_resolve_path_env_relative("STATE_FILE", "./stream_state.json", env_dir),
        request_counter_file=_resolve_path_env_relative(
            "REQUEST_COUNTER_FILE", "./request_counter.json", env_dir
        ),
        log_dir=log_dir,
        debug_logs=_get_bool("DEBUG_LOGS", False),
    )
