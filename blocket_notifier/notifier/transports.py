"""Blocket Notifier — Delivery Transports.

Channel transports for recipient notifications. The dispatcher only
depends on the SmsTransport, EmailTransport and UrlShortener protocols;
the HTTP classes below are the production implementations, posting JSON
to a provider API with a bearer token.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx

from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)


class SmsTransport(Protocol):
    async def send_sms(self, to: str, text: str) -> Any:
        ...


class EmailTransport(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> Any:
        ...


class UrlShortener(Protocol):
    async def shorten(self, url: str) -> str:
        ...


class _HttpGateway:
    """Shared JSON POST plumbing for the gateway transports."""

    def __init__(
        self,
        url: str,
        api_token: str = "",
        sender: str = "",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.api_token = api_token
        self.sender = sender
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def _post(self, payload: dict[str, Any]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        resp = await self._get_client().post(self.url, json=payload, headers=headers)
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError:
            return resp.text

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class HttpSmsGateway(_HttpGateway):
    """SMS delivery through an HTTP SMS provider."""

    async def send_sms(self, to: str, text: str) -> Any:
        logger.debug("SMS → %s (%d chars)", to, len(text))
        return await self._post({"from": self.sender, "to": to, "message": text})


class HttpEmailGateway(_HttpGateway):
    """E-mail delivery through an HTTP mail provider."""

    async def send_email(self, to: str, subject: str, html: str) -> Any:
        logger.debug("E-mail → %s: %s", to, subject)
        return await self._post({
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": html,
        })


class BitlyShortener(_HttpGateway):
    """Link shortening for SMS texts through the Bitly API."""

    API_URL = "https://api-ssl.bitly.com/v4/shorten"

    def __init__(
        self,
        api_token: str,
        url: str = API_URL,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(url, api_token, timeout_seconds=timeout_seconds, client=client)

    async def shorten(self, url: str) -> str:
        data = await self._post({"long_url": url})
        short = data.get("link") if isinstance(data, dict) else None
        if not short:
            raise ValueError(f"No short link in Bitly response for {url}")
        logger.debug("Shortened %s → %s", url, short)
        return short
