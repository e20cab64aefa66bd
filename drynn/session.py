"""Client-side session storage for the command-line tool."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path

from drynn.config import ConfigError, load_path

SERVER_URL_ENV = "DRYNN_SERVER_URL"


class SessionError(Exception):
    """Raised when the session file cannot be located, read or written."""


@dataclass
class SessionData:
    """Server address and tokens remembered between invocations."""

    server_url: str = ""
    access_token: str = ""
    refresh_token: str = ""


def _user_config_dir() -> Path:
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA", "")
        if not appdata:
            raise SessionError("config dir: %AppData% is not defined")
        return Path(appdata)
    if sys.platform == "darwin":
        home = os.environ.get("HOME", "")
        if not home:
            raise SessionError("config dir: $HOME is not defined")
        return Path(home) / "Library" / "Application Support"
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        if not os.path.isabs(xdg):
            raise SessionError("config dir: path in $XDG_CONFIG_HOME is relative")
        return Path(xdg)
    home = os.environ.get("HOME", "")
    if not home:
        raise SessionError("config dir: neither $XDG_CONFIG_HOME nor $HOME are defined")
    return Path(home) / ".config"


def session_path() -> Path:
    """Return the location of the session file."""
    return _user_config_dir() / "drynn" / "drynn.json"


def _decode(data: bytes) -> SessionData:
    document = json.loads(data)
    if document is None:
        return SessionData()
    if not isinstance(document, dict):
        raise ValueError("expected a JSON object")
    values = {}
    for name in ("server_url", "access_token", "refresh_token"):
        value = document.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"field {name!r} must be a string")
        values[name] = value
    return SessionData(**values)


def load_session() -> SessionData:
    """Read the saved session; an absent file yields an empty session."""
    path = session_path()
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return SessionData()
    except OSError as exc:
        raise SessionError(f"read session: {exc}") from exc
    try:
        return _decode(data)
    except (ValueError, UnicodeDecodeError) as exc:
        raise SessionError(f"decode session: {exc}") from exc


def save_session(session: SessionData) -> None:
    """Write the session atomically with owner-only permissions."""
    path = session_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SessionError(f"create session dir: {exc}") from exc

    payload = (json.dumps(asdict(session), indent=2) + "\n").encode("utf-8")
    tmp = str(path) + ".tmp"
    try:
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
    except OSError as exc:
        raise SessionError(f"write session: {exc}") from exc
    try:
        os.replace(tmp, path)
    except OSError as exc:
        raise SessionError(f"replace session: {exc}") from exc


def clear_tokens() -> None:
    """Forget both tokens while keeping the server address."""
    session = load_session()
    session.access_token = ""
    session.refresh_token = ""
    save_session(session)


def resolve_server_url(server_flag: str, config_path: str, existing: SessionData) -> str:
    """Pick the server URL: flag, then DRYNN_SERVER_URL, then config base_url, then session."""
    if server_flag:
        return server_flag.rstrip("/")

    env_value = os.environ.get(SERVER_URL_ENV, "")
    if env_value:
        return env_value.rstrip("/")

    if config_path:
        try:
            cfg = load_path(config_path)
        except ConfigError as exc:
            raise SessionError(f"load config: {exc}") from exc
        if cfg.base_url:
            return cfg.base_url.rstrip("/")

    if existing.server_url:
        return existing.server_url

    raise SessionError(
        "server URL is required: use --server, DRYNN_SERVER_URL, or --config"
    )