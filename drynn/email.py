"""Outbound e-mail through the Mailgun HTTP API."""

from __future__ import annotations

from dataclasses import dataclass

import requests

MAILGUN_API_BASE = "https://api.mailgun.net/v3"
SEND_TIMEOUT = 30.0


@dataclass
class MailgunConfig:
    """Credentials and sender identity for Mailgun."""

    api_key: str = ""
    sending_domain: str = ""
    from_address: str = ""
    from_name: str = ""

    def configured(self) -> bool:
        """Report whether enough settings are present to send mail."""
        return bool(self.api_key and self.sending_domain and self.from_address)

    def sender(self) -> str:
        """Return the value used for the From header."""
        if self.from_name:
            return f"{self.from_name} <{self.from_address}>"
        return self.from_address


def send(cfg: MailgunConfig, to: str, subject: str, html_body: str) -> None:
    """Send an HTML message; raises RuntimeError when delivery fails."""
    url = f"{MAILGUN_API_BASE}/{cfg.sending_domain}/messages"
    data = {
        "from": cfg.sender(),
        "to": to,
        "subject": subject,
        "html": html_body,
    }
    try:
        response = requests.post(
            url,
            auth=("api", cfg.api_key),
            data=data,
            timeout=SEND_TIMEOUT,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise RuntimeError(f"mailgun send: {exc}") from exc