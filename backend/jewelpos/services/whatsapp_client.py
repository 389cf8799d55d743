# Overview: HTTP client for the CallMeBot WhatsApp relay.

from __future__ import annotations

from typing import Optional

import httpx
from flask import current_app, has_app_context

from ..validation import TransientIOError

DEFAULT_RELAY_URL = "https://api.callmebot.com/whatsapp.php"


class RelayError(RuntimeError):
    """The relay answered with a non-200 status. Hard failure, surfaced as 502."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class WhatsAppRelayClient:
    """
    GET <relay>?phone=<digits>&text=<message>&apikey=<key>

    200 is success; any other status raises RelayError. Transport failures
    (DNS, connect, timeout) raise TransientIOError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if has_app_context():
            base_url = base_url or current_app.config.get("WHATSAPP_RELAY_URL")
            timeout = timeout or current_app.config.get("WHATSAPP_TIMEOUT_SECONDS")
        self.base_url = base_url or DEFAULT_RELAY_URL
        self.client = httpx.Client(timeout=timeout or 15.0, transport=transport)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def send(self, phone: str, api_key: str, text: str) -> str:
        """Send text to phone. Returns the relay's response body."""
        try:
            response = self.client.get(
                self.base_url,
                params={"phone": phone, "text": text, "apikey": api_key},
            )
        except httpx.TransportError as exc:
            raise TransientIOError(f"WhatsApp relay unreachable: {exc}") from exc

        if response.status_code != 200:
            raise RelayError(
                f"WhatsApp relay returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text[:500],
            )
        return response.text
