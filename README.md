# drynn

Support code for running a Drynn turn-based strategy game server and
talking to its JSON API:

- server configuration loading and writing (`drynn.config`)
- layered `.env` file loading (`drynn.dotenv`)
- bcrypt password hashing (`drynn.passwords`)
- rotating HS256 JWT signing keys kept in SQLite, and token issuing
  (`drynn.signing_keys`, `drynn.tokens`)
- HTML e-mail delivery through Mailgun (`drynn.email`, the `drynn-email`
  command)
- a saved client session and functions that call the game API
  (`drynn.session`, `drynn.games`)

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Configuration

`drynn.config.load_path(path)` reads a JSON server config file, applies
`DRYNN_*` environment overrides (for example `DRYNN_DATABASE_URL`,
`DRYNN_BASE_URL`, `DRYNN_JWT_ACCESS_TTL`, `DRYNN_MAILGUN_API_KEY`) and
returns a `Config`. An empty path means `default_path()`, which is
`DRYNN_CONFIG_PATH` or `data/var/drynn/server.json`; `load()` is the same
as `load_path(default_path())`. A missing file is not an error, but a
database URL and a base URL are required, and unknown fields, a wrong
field type or an unsupported `version` are rejected; all of these raise
`ConfigError`. Defaults are `app_addr` `:8080`, an access token lifetime
of 15 minutes and a refresh token lifetime of 7 days.

`write_path(path, options)` writes a fresh config file from an
`InitOptions` (creating its directory and the data directory) and returns
it as loaded. It refuses to overwrite an existing file unless
`options.force` is set.

Durations in the config file use the compact form `15m0s`, `168h0m0s`:
`parse_duration(text)` returns a `timedelta`, and `format_duration(value)`
renders a `timedelta` or a number of seconds in that form.

`drynn.dotenv.load_dotfiles(env)` accepts `development`, `test` or
`production` (anything else raises `ValueError`) and loads, where they
exist, `.env.<env>.local`, `.env.local` (skipped in `test`), `.env.<env>`
and `.env`. Earlier files take priority, and variables already set in the
process environment are never overwritten.

## Sending e-mail

With Mailgun settings in the config file (`mailgun.api_key`,
`mailgun.sending_domain`, `mailgun.from_address`, optionally
`mailgun.from_name`) or in `DRYNN_MAILGUN_*` environment variables:

```
drynn-email send -to player@example.com -subject "Turn 12 results" -body-file results.html
drynn-email send -config server.json -to player@example.com -subject "Hello" -body "<p>Hi</p>"
drynn-email version
drynn-email help
```

`send` requires `-to`, `-subject` and exactly one of `-body` or
`-body-file`. `DRYNN_ENV` picks which `.env` files are read first; it
defaults to `development`.

From Python, `drynn.email.send(cfg, to, subject, html_body)` posts the
message with a `MailgunConfig` and raises `RuntimeError` when delivery
fails; `MailgunConfig.configured()` tells whether the key, domain and
sender address are all set.

## Passwords and tokens

```python
from drynn.passwords import hash_password, compare_password

password = "password"
hashed = hash_password(password)
compare_password(hashed, password)   # raises PasswordMismatchError on mismatch
```

Passwords longer than 72 bytes are refused by `hash_password` with
`ValueError`.

`drynn.signing_keys.KeyStore(connection)` keeps access and refresh signing
keys in a `jwt_signing_keys` table of an `sqlite3` connection, creating the
table if needed:

- `ensure_ready()` creates a key of each type when none is active;
- `create_signing_key(token_type, verify_old_for)` adds a new active key
  and retires the previous one, which keeps verifying tokens for
  `verify_old_for`;
- `expire_signing_key(key_id, verify_for)` retires a key;
- `delete_signing_key(key_id)` removes a retired key (active keys raise
  `CannotDeleteActiveKeyError`);
- `active_signing_key(token_type)` and
  `verification_key(key_id, token_type, now)` look keys up.

Failures are subclasses of `SigningKeyError`.

`drynn.tokens.Manager(keys, access_ttl, refresh_ttl, cookie_secure)`
issues a `TokenPair` with `issue_tokens(user_id)`, verifies tokens with
`parse_access_token` and `parse_refresh_token` (returning `Claims`, or
raising `TokenError`, whose `expired` flag marks an expired token), and
builds the `Cookie` values a web layer would set with `auth_cookies(pair)`
and `cleared_auth_cookies()`. A `Viewer` describes the signed-in user;
`guest_viewer()` returns one with only the `guest` role.

## Game client

`drynn.session` stores a `SessionData` (server URL and tokens) in
`drynn/drynn.json` under the user's configuration directory:
`load_session()`, `save_session(session)` and `clear_tokens()`.
`resolve_server_url(server_flag, config_path, existing)` chooses the
server from an explicit value, then `DRYNN_SERVER_URL`, then a config
file's `base_url`, then the saved session.

`drynn.games` calls the game API at `/api/v1/games` with the session's
access token, given a `Runtime(server_url, session)`:
`game_create(file, rt)` posts the JSON game definition in a file, and
`game_list(rt)`, `game_show(game_id, rt)`, `game_update(game_id, rt)` and
`game_delete(game_id, rt)` work on existing games. Replies are printed and
returned. Failed requests raise `ApiError` carrying the server's `error`
message when it sent one.

## What this package does not do

It contains no game server, no HTTP request handling or authentication
middleware, and no database of users, invitations or games; the signing
key store is the only storage it manages. It has no command-line client
for logging in or managing games: `drynn.session` and `drynn.games` are
functions for use from Python, and the only installed command is
`drynn-email`.