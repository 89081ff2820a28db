"""Shared configuration for the fetch and summarize runs."""
from __future__ import annotations

import os
from pathlib import Path

from .errors import ConfigError

STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
STRAVA_API_BASE = "https://www.strava.com/api/v3"

MAX_PER_PAGE = 200
CALLBACK_PATH = "/exchange_token"

CLIENT_ID_VAR = "STRAVA_CLIENT_ID"
CLIENT_SECRET_VAR = "STRAVA_CLIENT_SECRET"
CLIENT_VARS = (CLIENT_ID_VAR, CLIENT_SECRET_VAR)

DEFAULT_SCOPES = "read,activity:read"

PACKAGE_DIR = Path(__file__).resolve().parent


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def snapshot_path() -> Path:
    return Path(os.environ.get("STRAVA_SNAPSHOT_PATH", "activities.json")).expanduser()


def auth_timeout() -> float | None:
    """Seconds to wait for the browser redirect; ``None`` waits forever."""
    seconds = _int_from_env("STRAVA_AUTH_TIMEOUT", 300)
    return float(seconds) if seconds else None


def scopes() -> str:
    return os.environ.get("STRAVA_SCOPES", DEFAULT_SCOPES)


def display_unit() -> str:
    return os.environ.get("STRAVA_UNIT", "mi")


def parse_dotenv(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not (path.is_file() and os.access(path, os.R_OK)):
        return values

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return values

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").strip()
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = value
    return values


def discover_env_files() -> list[Path]:
    candidates: list[Path] = []
    explicit = os.getenv("STRAVA_ENV_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    for path in (PACKAGE_DIR.parent / ".env", Path.cwd() / ".env"):
        if path not in candidates:
            candidates.append(path)
    return candidates


def resolve_client_credentials() -> tuple[dict[str, str], dict[str, str], list[Path]]:
    """Look up the app's client id and secret.

    Lookup order is environment variables, then each discovered ``.env``
    file. Returns the values found, where each came from, and the ``.env``
    paths that were searched.
    """
    values: dict[str, str] = {}
    sources: dict[str, str] = {}

    for var_name in CLIENT_VARS:
        env_value = os.getenv(var_name)
        if env_value:
            values[var_name] = env_value
            sources[var_name] = "environment"

    env_files = discover_env_files()
    for env_file in env_files:
        if all(var_name in values for var_name in CLIENT_VARS):
            break
        file_values = parse_dotenv(env_file)
        for var_name in CLIENT_VARS:
            if var_name not in values and file_values.get(var_name):
                values[var_name] = file_values[var_name]
                sources[var_name] = f"dotenv:{env_file}"

    return values, sources, env_files


def require_client_credentials(
    client_id: str | None = None, client_secret: str | None = None
) -> tuple[str, str]:
    """Return explicit credentials, falling back to env/.env discovery."""
    if client_id and client_secret:
        return client_id, client_secret

    values, _sources, searched = resolve_client_credentials()
    client_id = client_id or values.get(CLIENT_ID_VAR)
    client_secret = client_secret or values.get(CLIENT_SECRET_VAR)
    missing = [
        name
        for name, value in ((CLIENT_ID_VAR, client_id), (CLIENT_SECRET_VAR, client_secret))
        if not value
    ]
    if missing:
        searched_text = ", ".join(str(path) for path in searched)
        raise ConfigError(
            f"Missing Strava credentials: {', '.join(missing)}\n"
            "Pass them as arguments or set them in the environment or a .env file.\n"
            f"Searched .env paths: {searched_text}"
        )
    return client_id, client_secret
