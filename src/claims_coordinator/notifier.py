from __future__ import annotations

import asyncio
import logging
import re
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


class Notifier(Protocol):
    async def send(self, text: str) -> None: ...

    async def close(self) -> None: ...


class NotificationError(RuntimeError):
    pass


class LogNotifier:
    """Writes user-facing notifications to the log when no chat sink is configured."""

    def __init__(self, name: str = "claims.notifications") -> None:
        self._logger = logging.getLogger(name)
        self.sent = 0

    async def send(self, text: str) -> None:
        self.sent += 1
        self._logger.info(_TAG_RE.sub("", text).replace("\n\n", " | ").replace("\n", " | "))

    async def close(self) -> None:
        return None


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 15.0,
        retries: int = 4,
        api_base: str = "https://api.telegram.org",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.chat_id = chat_id
        self.retries = max(1, retries)
        self._url = f"{api_base.rstrip('/')}/bot{bot_token}/sendMessage"
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, text: str) -> None:
        delay = 1.0
        for attempt in range(self.retries):
            try:
                response = await self._post(text)
                if response.status_code == 429:
                    wait = _retry_after(response)
                    logger.warning("Telegram rate limited. Sleeping %.1fs", wait)
                    await asyncio.sleep(wait)
                    continue
                response.raise_for_status()
                data = response.json()
                if not data.get("ok", False):
                    raise NotificationError(f"Telegram send failed: {data}")
                return
            except (httpx.HTTPError, NotificationError) as exc:
                if attempt == self.retries - 1:
                    raise
                logger.warning("Telegram send attempt %d failed: %s", attempt + 1, exc)
                await asyncio.sleep(delay)
                delay *= 2
        raise NotificationError("Telegram send gave up after rate limiting")

    async def _post(self, text: str) -> httpx.Response:
        return await self._client.post(
            self._url,
            json={
                "chat_id": self.chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )


def _retry_after(response: httpx.Response, default: float = 2.0) -> float:
    try:
        payload = response.json()
        return float(payload.get("parameters", {}).get("retry_after", default))
    except (ValueError, AttributeError, TypeError):
        return default
