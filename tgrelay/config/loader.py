"""Configuration loading utilities."""

import json
import os
import re
import stat
from pathlib import Path
from typing import Any, Callable, Mapping

from loguru import logger

from tgrelay.config.schema import Config

TOKEN_ENV = "TGRELAY_TELEGRAM__TOKEN"


def _positive_int(value: str) -> int | None:
    try:
        parsed = int(value.strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1")


# Settings that may come from the environment, with their variable names in
# priority order (HTTP_PROXY wins over HTTPS_PROXY).
_ENV_OVERLAY: list[tuple[tuple[str, str], tuple[str, ...], Callable[[str], Any]]] = [
    (("telegram", "token"), (TOKEN_ENV, "TELEGRAM_BOT_TOKEN"), str.strip),
    (("telegram", "chat_id"), ("TGRELAY_TELEGRAM__CHAT_ID", "TELEGRAM_CHAT_ID"), str.strip),
    (("telegram", "proxy"), ("TGRELAY_TELEGRAM__PROXY", "HTTP_PROXY", "HTTPS_PROXY"), str.strip),
    (("approval", "timeout_ms"), ("TGRELAY_APPROVAL__TIMEOUT_MS", "TELEGRAM_APPROVAL_TIMEOUT"), _positive_int),
    (("notify", "notify_all"), ("TGRELAY_NOTIFY__NOTIFY_ALL", "TELEGRAM_NOTIFY_ALL"), _flag),
]


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".tgrelay" / "config.json"


def get_env_path() -> Path:
    """Get the default secrets .env file path."""
    return Path.home() / ".tgrelay" / ".env"


def _owner_only(path: Path) -> None:
    try:
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        pass  # not supported on every platform / filesystem


def read_dotenv(env_path: Path) -> dict[str, str]:
    """``KEY=value`` lines from a .env file; comments and junk are skipped."""
    if not env_path.exists():
        return {}
    values: dict[str, str] = {}
    for raw in env_path.read_text(encoding="utf-8").splitlines():
        key, sep, value = raw.strip().partition("=")
        if not sep or not key or key.startswith("#"):
            continue
        value = value.strip()
        if value[:1] in ('"', "'") and value[-1:] == value[:1] and len(value) > 1:
            value = value[1:-1]
        values[key.strip()] = value
    return values


def load_config(config_path: Path | None = None, env_path: Path | None = None) -> Config:
    """
    Load configuration from ``config.json`` plus the environment.

    The bot token, chat id, proxy, approval timeout and notify flag are
    looked up in this order (first non-empty value wins):
      1. the process environment (TGRELAY_* names before the legacy ones)
      2. the ~/.tgrelay/.env file (same name order)
      3. ~/.tgrelay/config.json
    """
    path = config_path or get_config_path()
    dotenv = read_dotenv(env_path or get_env_path())
    environ = dict(os.environ)

    # Let pydantic-settings see .env values too when there is no config file.
    for key, value in dotenv.items():
        os.environ.setdefault(key, value)

    config = Config()
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                config = Config.model_validate(convert_keys(json.load(f)))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}; using default configuration")

    _apply_env_overlay(config, (environ, dotenv))
    return config


def _apply_env_overlay(config: Config, sources: tuple[Mapping[str, str], ...]) -> None:
    for (section, field), names, convert in _ENV_OVERLAY:
        value = _lookup(names, sources, convert)
        if value is not None:
            setattr(getattr(config, section), field, value)


def _lookup(names: tuple[str, ...], sources: tuple[Mapping[str, str], ...], convert: Callable[[str], Any]) -> Any:
    for source in sources:
        for name in names:
            raw = source.get(name, "")
            if not raw.strip():
                continue
            value = convert(raw)
            if value is not None and value != "":
                return value
    return None


def save_config(config: Config, config_path: Path | None = None, env_path: Path | None = None) -> None:
    """
    Save configuration to file.

    The bot token goes to ~/.tgrelay/.env (mode 600) and is blanked in
    config.json so that the JSON file holds no credentials.
    """
    path = config_path or get_config_path()
    env_path = env_path or get_env_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    token = data["telegram"].get("token") or ""
    data["telegram"]["token"] = ""
    _write_env(env_path, {TOKEN_ENV: token} if token else {})

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    _owner_only(path)


def _write_env(env_path: Path, updates: dict[str, str]) -> None:
    """Merge ``updates`` into the .env file, keeping unrelated entries."""
    values = {**read_dotenv(env_path), **updates}
    lines = [
        "# tgrelay secrets, managed automatically. Do not commit this file.",
        "# Permissions should be 600 (owner read/write only).",
        "",
    ]
    for key in sorted(values):
        value = values[key]
        if any(c in value for c in " \"'#"):
            value = '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        lines.append(f"{key}={value}")
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    _owner_only(env_path)


def token_in_config_file(config_path: Path | None = None) -> bool:
    """True if config.json still carries a bot token in clear text."""
    path = config_path or get_config_path()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return False
    telegram = data.get("telegram") if isinstance(data, dict) else None
    return isinstance(telegram, dict) and bool(str(telegram.get("token") or "").strip())


# ── camelCase <-> snake_case ──


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _rekey(data: Any, convert: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {convert(k): _rekey(v, convert) for k, v in data.items()}
    if isinstance(data, list):
        return [_rekey(item, convert) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase JSON keys to snake_case field names."""
    return _rekey(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """snake_case field names to camelCase JSON keys."""
    return _rekey(data, snake_to_camel)
