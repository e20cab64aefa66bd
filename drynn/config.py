"""Server configuration assembled from defaults, a JSON file and the environment."""

from __future__ import annotations

import json
import os
import re
import stat
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path

from drynn.email import MailgunConfig

CONFIG_VERSION = 1
CONFIG_PATH_ENV = "DRYNN_CONFIG_PATH"
DEFAULT_APP_ADDR = ":8080"
DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=7)


class ConfigError(Exception):
    """Raised when configuration cannot be read, validated or written."""


# ---------------------------------------------------------------- durations

_NS_PER_SECOND = 10**9
_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": _NS_PER_SECOND,
    "m": 60 * _NS_PER_SECOND,
    "h": 3600 * _NS_PER_SECOND,
}
_COMPONENT = re.compile(r"([0-9]*(?:\.[0-9]*)?)([^0-9.]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "15m", "1h30m" or "1.5s"."""
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")

    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        number, unit = match.group(1), match.group(2)
        if not any(ch.isdigit() for ch in number):
            raise ValueError(f"invalid duration {text!r}")
        if not unit:
            raise ValueError(f"missing unit in duration {text!r}")
        if unit not in _UNIT_NS:
            raise ValueError(f"unknown unit {unit!r} in duration {text!r}")
        try:
            total += Decimal(number) * _UNIT_NS[unit]
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {text!r}") from exc
        pos = match.end()

    nanoseconds = int(total)
    result = timedelta(microseconds=nanoseconds // 1000)
    return -result if negative else result


def _fraction(value: int, digits: int) -> str:
    if value == 0:
        return ""
    return "." + str(value).rjust(digits, "0").rstrip("0")


def format_duration(seconds: timedelta | float | int) -> str:
    """Render a duration (timedelta or seconds) in the "1h2m3s" style."""
    if isinstance(seconds, timedelta):
        nanoseconds = (
            (seconds.days * 86400 + seconds.seconds) * _NS_PER_SECOND
            + seconds.microseconds * 1000
        )
    else:
        nanoseconds = int(round(Decimal(str(seconds)) * _NS_PER_SECOND))

    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    nanoseconds = abs(nanoseconds)

    if nanoseconds < _NS_PER_SECOND:
        if nanoseconds < 1_000:
            unit, size, digits = "ns", 1, 0
        elif nanoseconds < 1_000_000:
            unit, size, digits = "\u00b5s", 1_000, 3
        else:
            unit, size, digits = "ms", 1_000_000, 6
        whole, frac = divmod(nanoseconds, size)
        return f"{sign}{whole}{_fraction(frac, digits)}{unit}"

    whole_seconds, frac_ns = divmod(nanoseconds, _NS_PER_SECOND)
    hours, remainder = divmod(whole_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    sec_text = f"{secs}{_fraction(frac_ns, 9)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{sec_text}"
    if minutes:
        return f"{sign}{minutes}m{sec_text}"
    return f"{sign}{sec_text}"


# ---------------------------------------------------------------- paths


def default_path() -> str:
    """Return the config path from DRYNN_CONFIG_PATH or the built-in default."""
    value = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if value:
        return value
    return os.path.join("data", "var", "drynn", "server.json")


def default_data_dir() -> str:
    """Return the built-in data directory."""
    return os.path.join("data", "var", "drynn", "data")


# ---------------------------------------------------------------- models


@dataclass
class Config:
    """Effective server configuration."""

    config_path: str = ""
    app_addr: str = DEFAULT_APP_ADDR
    database_url: str = ""
    data_dir: str = field(default_factory=default_data_dir)
    jwt_access_ttl: timedelta = DEFAULT_ACCESS_TTL
    jwt_refresh_ttl: timedelta = DEFAULT_REFRESH_TTL
    cookie_secure: bool = False
    base_url: str = ""
    mailgun: MailgunConfig = field(default_factory=MailgunConfig)
    request_access_enabled: bool = False
    admin_contact_email: str = ""


@dataclass
class InitOptions:
    """Values used to write a new configuration file."""

    app_addr: str = ""
    database_url: str = ""
    data_dir: str = ""
    jwt_access_ttl: timedelta = timedelta(0)
    jwt_refresh_ttl: timedelta = timedelta(0)
    cookie_secure: bool = False
    base_url: str = ""
    mailgun: MailgunConfig = field(default_factory=MailgunConfig)
    request_access_enabled: bool = False
    admin_contact_email: str = ""
    force: bool = False


# ---------------------------------------------------------------- loading

_FILE_FIELDS = {
    "version": int,
    "app_addr": str,
    "database_url": str,
    "data_dir": str,
    "jwt_access_ttl": str,
    "jwt_refresh_ttl": str,
    "cookie_secure": bool,
    "base_url": str,
    "mailgun": dict,
    "request_access_enabled": bool,
    "admin_contact_email": str,
}
_MAILGUN_FIELDS = ("api_key", "sending_domain", "from_address", "from_name")
_MAILGUN_ENV_PREFIX = "DRYNN_MAILGUN_"


def _checked(value, kind, name):
    if value is None:
        return None
    valid = isinstance(value, kind) and not (kind is int and isinstance(value, bool))
    if not valid:
        raise ConfigError(
            f"decode config file: field {name!r} must be of type {kind.__name__}"
        )
    return value


def _decode_file(data: bytes) -> tuple[dict, dict]:
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"decode config file: {exc}") from exc
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigError("decode config file: expected a JSON object")

    values: dict = {}
    for key, value in document.items():
        if key not in _FILE_FIELDS:
            raise ConfigError(f"decode config file: unknown field {key!r}")
        values[key] = _checked(value, _FILE_FIELDS[key], key)

    mailgun: dict = {}
    for key, value in (values.pop("mailgun", None) or {}).items():
        if key not in _MAILGUN_FIELDS:
            raise ConfigError(f"decode config file: unknown field {key!r}")
        mailgun[key] = _checked(value, str, key)
    return values, mailgun


def _merge_file_config(cfg: Config, path: str) -> None:
    try:
        info = os.stat(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise ConfigError(f"stat config file: {exc}") from exc
    if stat.S_ISDIR(info.st_mode):
        raise ConfigError(f"config path {path} is a directory")

    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigError(f"read config file: {exc}") from exc

    values, mailgun = _decode_file(data)
    version = values.get("version") or 0
    if version not in (0, CONFIG_VERSION):
        raise ConfigError(f"unsupported config version {version}")

    for name in ("app_addr", "database_url", "data_dir", "base_url", "admin_contact_email"):
        if values.get(name):
            setattr(cfg, name, values[name])
    for name in ("jwt_access_ttl", "jwt_refresh_ttl"):
        if values.get(name):
            try:
                setattr(cfg, name, parse_duration(values[name]))
            except ValueError as exc:
                raise ConfigError(f"parse {name}: {exc}") from exc
    cfg.cookie_secure = bool(values.get("cookie_secure"))
    cfg.request_access_enabled = bool(values.get("request_access_enabled"))

    for name in _MAILGUN_FIELDS:
        if mailgun.get(name):
            setattr(cfg.mailgun, name, mailgun[name])


_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


def _env_str(key: str, fallback: str) -> str:
    return os.environ.get(key) or fallback


def _env_bool(key: str, fallback: bool) -> bool:
    value = os.environ.get(key, "")
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return fallback


def _env_duration(key: str, fallback: timedelta) -> timedelta:
    value = os.environ.get(key, "")
    if not value:
        return fallback
    try:
        return parse_duration(value)
    except ValueError:
        return fallback


def _apply_env_overrides(cfg: Config) -> None:
    cfg.app_addr = _env_str("DRYNN_APP_ADDR", cfg.app_addr)
    cfg.database_url = _env_str("DRYNN_DATABASE_URL", cfg.database_url)
    cfg.data_dir = _env_str("DRYNN_DATA_DIR", cfg.data_dir)
    cfg.jwt_access_ttl = _env_duration("DRYNN_JWT_ACCESS_TTL", cfg.jwt_access_ttl)
    cfg.jwt_refresh_ttl = _env_duration("DRYNN_JWT_REFRESH_TTL", cfg.jwt_refresh_ttl)
    cfg.cookie_secure = _env_bool("DRYNN_COOKIE_SECURE", cfg.cookie_secure)
    cfg.base_url = _env_str("DRYNN_BASE_URL", cfg.base_url)
    for name in _MAILGUN_FIELDS:
        variable = _MAILGUN_ENV_PREFIX + name.upper()
        setattr(cfg.mailgun, name, _env_str(variable, getattr(cfg.mailgun, name)))
    cfg.request_access_enabled = _env_bool(
        "DRYNN_REQUEST_ACCESS_ENABLED", cfg.request_access_enabled
    )
    cfg.admin_contact_email = _env_str(
        "DRYNN_ADMIN_CONTACT_EMAIL", cfg.admin_contact_email
    )


def load() -> Config:
    """Load the configuration from the default path."""
    return load_path(default_path())


def load_path(path: str) -> Config:
    """Load the configuration from path, then apply environment overrides."""
    if not str(path).strip():
        path = default_path()
    path = str(path)

    cfg = Config(config_path=path)
    _merge_file_config(cfg, path)
    _apply_env_overrides(cfg)

    if not cfg.database_url:
        raise ConfigError(
            f"DATABASE_URL is required in {path} or the environment"
        )
    if not cfg.base_url:
        raise ConfigError(
            f"base_url is required in {path} or DRYNN_BASE_URL in the environment"
        )
    return cfg


# ---------------------------------------------------------------- writing


def _default_string(value: str, fallback: str) -> str:
    return value.strip() or fallback


def _default_duration(value: timedelta, fallback: timedelta) -> timedelta:
    return fallback if value <= timedelta(0) else value


def _encode(document: dict) -> bytes:
    text = json.dumps(document, indent=2, ensure_ascii=False)
    for raw, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(raw, escaped)
    return (text + "\n").encode("utf-8")


def write_path(path: str, options: InitOptions) -> Config:
    """Write a new configuration file and return it as loaded."""
    if not str(path).strip():
        path = default_path()
    path = str(path)

    database_url = options.database_url.strip()
    if not database_url:
        raise ConfigError("database URL is required")
    base_url = options.base_url.strip()
    if not base_url:
        raise ConfigError("base URL is required")

    data_dir = _default_string(options.data_dir, default_data_dir())
    document = {
        "version": CONFIG_VERSION,
        "app_addr": _default_string(options.app_addr, DEFAULT_APP_ADDR),
        "database_url": database_url,
        "data_dir": data_dir,
        "jwt_access_ttl": format_duration(
            _default_duration(options.jwt_access_ttl, DEFAULT_ACCESS_TTL)
        ),
        "jwt_refresh_ttl": format_duration(
            _default_duration(options.jwt_refresh_ttl, DEFAULT_REFRESH_TTL)
        ),
        "cookie_secure": options.cookie_secure,
        "base_url": base_url,
        "mailgun": {
            name: getattr(options.mailgun, name).strip() for name in _MAILGUN_FIELDS
        },
        "request_access_enabled": options.request_access_enabled,
        "admin_contact_email": options.admin_contact_email.strip(),
    }

    if not options.force:
        try:
            os.stat(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise ConfigError(f"stat config file: {exc}") from exc
        else:
            raise ConfigError(f"config file already exists at {path}")

    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"create config directory: {exc}") from exc
    try:
        Path(data_dir).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"create data directory: {exc}") from exc

    temp_path = path + ".tmp"
    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(_encode(document))
    except OSError as exc:
        raise ConfigError(f"write config file: {exc}") from exc
    try:
        os.replace(temp_path, path)
    except OSError as exc:
        raise ConfigError(f"replace config file: {exc}") from exc

    return load_path(path)