"""Command-line tool for sending e-mail through Mailgun."""

from __future__ import annotations

import argparse
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from drynn.config import ConfigError, default_path, load_path
from drynn.dotenv import load_dotfiles
from drynn.email import send


class _HelpRequested(Exception):
    """Raised after help text has been printed."""


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_help(sys.stderr)
        raise ValueError(message)


def _program() -> str:
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "email"


def _build_version() -> str:
    try:
        return version("drynn")
    except PackageNotFoundError:
        return "0.0.0"


def _send_parser() -> _Parser:
    parser = _Parser(
        prog=f"{_program()} send",
        usage=f"{_program()} send [flags]",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-config", "--config", dest="config_path", default=default_path(),
        help="path to the server config file",
    )
    parser.add_argument("-to", "--to", default="", help="recipient email address")
    parser.add_argument("-subject", "--subject", default="", help="message subject")
    parser.add_argument(
        "-body", "--body", default="",
        help="HTML message body (mutually exclusive with -body-file)",
    )
    parser.add_argument(
        "-body-file", "--body-file", dest="body_file", default="",
        help="path to a file containing the HTML message body",
    )
    parser.add_argument("-h", "-help", "--help", dest="help", action="store_true")
    return parser


def run_send(args: list[str]) -> None:
    """Validate the send flags and deliver one HTML message."""
    parser = _send_parser()
    options = parser.parse_args(args)
    if options.help:
        parser.print_help(sys.stderr)
        raise _HelpRequested()

    if not options.to.strip():
        raise ValueError("to is required")
    if not options.subject.strip():
        raise ValueError("subject is required")
    if options.body and options.body_file:
        raise ValueError("specify only one of -body or -body-file")

    html_body = options.body
    if options.body_file:
        try:
            html_body = Path(options.body_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValueError(f"read body file: {exc}") from exc
    if not html_body.strip():
        raise ValueError("body is required (use -body or -body-file)")

    cfg = load_path(options.config_path)
    if not cfg.mailgun.configured():
        raise ValueError(f"mailgun is not configured in {cfg.config_path}")

    try:
        send(cfg.mailgun, options.to, options.subject, html_body)
    except RuntimeError as exc:
        raise RuntimeError(f"send email: {exc}") from exc

    print(f"sent message to {options.to}")


def _usage() -> None:
    lines = [
        f"usage: {_program()} <command> [flags]",
        "",
        "commands:",
        "  send     send an HTML email via Mailgun",
        "  version  print the build version",
    ]
    print("\n".join(lines), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the e-mail tool and return the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)

    env = os.environ.get("DRYNN_ENV") or "development"
    try:
        load_dotfiles(env)
    except (ValueError, ConfigError) as exc:
        print(f"dotenv: {exc}", file=sys.stderr)
        return 1

    if not args:
        _usage()
        return 2

    command = args[0]
    if command == "version":
        print(_build_version())
        return 0
    if command in ("help", "-h", "--help"):
        _usage()
        return 0
    if command != "send":
        _usage()
        print(f'unknown command "{command}"', file=sys.stderr)
        return 1

    try:
        run_send(args[1:])
    except _HelpRequested:
        return 0
    except (ValueError, RuntimeError, ConfigError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0