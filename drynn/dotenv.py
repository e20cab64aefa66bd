"""Load .env files for the selected runtime environment."""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

from drynn.config import ConfigError

ENVIRONMENTS = ("development", "test", "production")


def _candidates(env: str) -> list[str]:
    names = [f".env.{env}.local", ".env.local", f".env.{env}", ".env"]
    if env == "test":
        # .env.local is never read in test runs.
        names.remove(".env.local")
    return names


def load_dotfiles(env: str) -> None:
    """Load dotenv files in priority order; earlier files win, the process env wins over all."""
    if env == "":
        raise ValueError("missing environment")
    if env not in ENVIRONMENTS:
        raise ValueError("unknown environment")

    for name in _candidates(env):
        path = Path(name)
        if not path.is_file():
            continue
        try:
            load_dotenv(path, override=False)
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"{name}: {exc}") from exc