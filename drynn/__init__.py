"""Configuration, passwords, JWT signing keys and tokens, Mailgun e-mail and game API client for Drynn."""

__version__ = "0.1.0"