"""Blocket Notifier — Telegram Operator Bot.

Async Telegram client using python-telegram-bot for operator alerts:
run summaries and fatal errors. Long messages are split at line
boundaries; HTML parse failures fall back to plain text.
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut

from blocket_notifier.config import TelegramConfig
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

_SAFE_LEN = 4000  # Telegram caps messages at 4096


class TelegramNotifier:
    """Sends operator messages to one Telegram chat.

    Attributes:
        config: TelegramConfig with bot_token and chat_id.
    """

    def __init__(self, config: TelegramConfig, bot: Optional[Bot] = None) -> None:
        self.config = config
        self._bot = bot
        if self._bot is None and config.enabled:
            self._bot = Bot(token=config.bot_token)

    @property
    def enabled(self) -> bool:
        return self._bot is not None and bool(self.config.chat_id)

    async def send_message(self, text: str) -> Optional[str]:
        """Send a message, split into parts if needed.

        Args:
            text: HTML-formatted message.

        Returns:
            The last message id on success, None when disabled or failed.
        """
        if not text or not self.enabled:
            return None

        chunks = self._split_message(text, _SAFE_LEN)
        last_msg_id: Optional[str] = None
        for i, chunk in enumerate(chunks):
            msg_id = await self._send_single(chunk)
            if msg_id is not None:
                last_msg_id = msg_id
            if i < len(chunks) - 1:
                await asyncio.sleep(0.5)
        return last_msg_id

    async def _send_single(self, text: str) -> Optional[str]:
        max_retries = 3

        for attempt in range(max_retries):
            try:
                msg = await self._bot.send_message(
                    chat_id=self.config.chat_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    disable_web_page_preview=True,
                )
                return str(msg.message_id)

            except BadRequest as e:
                if "parse" not in str(e).lower():
                    logger.error("Telegram BadRequest: %s", e)
                    return None
                logger.warning("Parse error, retrying as plain text: %s", str(e)[:200])
                try:
                    msg = await self._bot.send_message(
                        chat_id=self.config.chat_id,
                        text=self._strip_formatting(text),
                        disable_web_page_preview=True,
                    )
                    return str(msg.message_id)
                except Exception as e2:
                    logger.error("Plain text fallback also failed: %s", e2)
                    return None

            except RetryAfter as e:
                wait = e.retry_after
                wait = wait.total_seconds() if hasattr(wait, "total_seconds") else wait
                logger.warning("Telegram rate limited. Waiting %s seconds...", wait)
                await asyncio.sleep(float(wait))

            except (TimedOut, NetworkError) as e:
                logger.warning(
                    "Telegram network error (attempt %d/%d): %s",
                    attempt + 1, max_retries, e,
                )
                await asyncio.sleep(2 ** attempt)

            except Exception as e:
                logger.error("Telegram unexpected error: %s", e)
                return None

        logger.error("Failed to send message after %d attempts", max_retries)
        return None

    @staticmethod
    def _split_message(text: str, max_len: int = _SAFE_LEN) -> list[str]:
        """Split long text at paragraph or line boundaries."""
        if len(text) <= max_len:
            return [text]

        chunks: list[str] = []
        remaining = text
        while len(remaining) > max_len:
            cut_point = remaining.rfind("\n\n", 0, max_len)
            if cut_point <= 0:
                cut_point = remaining.rfind("\n", 0, max_len)
            if cut_point <= 0:
                cut_point = max_len
            chunks.append(remaining[:cut_point].rstrip())
            remaining = remaining[cut_point:].lstrip("\n")

        if remaining.strip():
            chunks.append(remaining.strip())
        return chunks

    @staticmethod
    def _strip_formatting(text: str) -> str:
        """Plain-text version of an HTML message."""
        text = re.sub(r'<a href="([^"]+)">([^<]+)</a>', r"\2 (\1)", text)
        text = re.sub(r"<[^>]+>", "", text)
        return text.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")

    async def close(self) -> None:
        if self._bot is not None:
            try:
                await self._bot.shutdown()
            except Exception as e:
                logger.debug("Telegram bot shutdown: %s", e)
