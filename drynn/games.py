"""Game management commands that talk to the server's JSON API."""

from __future__ import annotations

import json
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

import requests

from drynn.session import SessionData

GAMES_PATH = "/api/v1/games"
HTTP_TIMEOUT = 30.0
NOT_LOGGED_IN = "not logged in; run 'drynn login' first"

_http = requests.Session()


class ApiError(Exception):
    """Raised when a request fails or the server reports an error."""


@dataclass
class Runtime:
    """Resolved server address and the current session."""

    server_url: str
    session: SessionData = field(default_factory=SessionData)


def _status_line(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason or ''}".rstrip()


def read_api_error(response: requests.Response, fallback: str) -> ApiError:
    """Build the error for a failed response: the body's "error" field, else fallback, else the status."""
    try:
        document = json.loads(response.content)
    except (ValueError, UnicodeDecodeError):
        document = None
    if isinstance(document, dict):
        message = document.get("error")
        if isinstance(message, str) and message:
            return ApiError(message)
    if fallback:
        return ApiError(fallback)
    return ApiError(_status_line(response))


def _join_url(base: str, *elements: str) -> str:
    parts = urlsplit(base)
    joined = "/".join([parts.path, *elements])
    trailing = elements and elements[-1].endswith("/")
    cleaned = posixpath.normpath(re.sub(r"/+", "/", "/" + joined))
    if trailing and cleaned != "/":
        cleaned += "/"
    path = quote(cleaned, safe="/:@!$&'()*+,;=-._~")
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def _endpoint(rt: Runtime, label: str, *elements: str) -> str:
    try:
        return _join_url(rt.server_url, *elements)
    except ValueError as exc:
        raise ApiError(f"build {label} URL: {exc}") from exc


def _require_login(rt: Runtime) -> None:
    if not rt.session.access_token:
        raise ApiError(NOT_LOGGED_IN)


def _call(
    rt: Runtime,
    method: str,
    endpoint: str,
    action: str,
    expected: int,
    data: bytes | None = None,
    content_type: str | None = None,
) -> bytes:
    headers = {"Authorization": "Bearer " + rt.session.access_token}
    if content_type:
        headers["Content-Type"] = content_type
    try:
        response = _http.request(
            method, endpoint, data=data, headers=headers, timeout=HTTP_TIMEOUT
        )
    except requests.RequestException as exc:
        raise ApiError(f"{action} request: {exc}") from exc
    with response:
        if response.status_code != expected:
            raise read_api_error(response, f"{action} failed: {_status_line(response)}")
        return response.content


def _emit(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    print(text)
    return text


def game_create(file: str, rt: Runtime) -> str:
    """POST the JSON in file as a new game; print and return the server's reply."""
    if not file:
        raise ValueError("--file is required")
    _require_login(rt)

    try:
        body = Path(file).read_bytes()
    except OSError as exc:
        raise ApiError(f"read file: {exc}") from exc
    try:
        json.loads(body, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ApiError(f'file "{file}" does not contain valid JSON') from exc

    endpoint = _endpoint(rt, "games", GAMES_PATH)
    reply = _call(rt, "POST", endpoint, "create game", 201, body, "application/json")
    return _emit(reply)


def _reject_constant(name: str):
    raise ValueError(f"invalid JSON constant {name}")


def game_list(rt: Runtime) -> str:
    """Fetch, print and return the list of games."""
    _require_login(rt)
    endpoint = _endpoint(rt, "games", GAMES_PATH)
    return _emit(_call(rt, "GET", endpoint, "list games", 200))


def game_show(game_id: str, rt: Runtime) -> str:
    """Fetch, print and return one game."""
    if not game_id:
        raise ValueError("--id is required")
    _require_login(rt)
    endpoint = _endpoint(rt, "game", GAMES_PATH, game_id)
    return _emit(_call(rt, "GET", endpoint, "show game", 200))


def game_delete(game_id: str, rt: Runtime) -> None:
    """Delete one game and print "deleted"."""
    if not game_id:
        raise ValueError("--id is required")
    _require_login(rt)
    endpoint = _endpoint(rt, "game", GAMES_PATH, game_id)
    _call(rt, "DELETE", endpoint, "delete game", 204)
    print("deleted")


def game_update(game_id: str, rt: Runtime) -> str:
    """Ask the server to update one game; print and return its reply."""
    if not game_id:
        raise ValueError("--id is required")
    _require_login(rt)
    endpoint = _endpoint(rt, "game", GAMES_PATH, game_id)
    return _emit(_call(rt, "PUT", endpoint, "update game", 200))