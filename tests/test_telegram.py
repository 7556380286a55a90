"""Tests for the operator Telegram notifier and run summary formatting."""

from __future__ import annotations

from types import SimpleNamespace

from blocket_notifier.config import TelegramConfig
from blocket_notifier.notifier.formatters import format_run_summary
from blocket_notifier.notifier.telegram_bot import TelegramNotifier
from blocket_notifier.pipeline.runner import ItemResult, RunReport


class FakeBot:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send_message(self, chat_id, text, **kwargs):
        self.messages.append(text)
        return SimpleNamespace(message_id=len(self.messages))


async def test_disabled_notifier_sends_nothing():
    notifier = TelegramNotifier(TelegramConfig())

    assert notifier.enabled is False
    assert await notifier.send_message("hello") is None


async def test_long_messages_are_split_on_line_boundaries():
    bot = FakeBot()
    notifier = TelegramNotifier(TelegramConfig(bot_token="t", chat_id="42"), bot=bot)
    text = "\n".join(f"line {i:04d} " + "x" * 40 for i in range(200))

    msg_id = await notifier.send_message(text)

    assert msg_id == str(len(bot.messages))
    assert len(bot.messages) > 1
    assert all(len(m) <= 4000 for m in bot.messages)
    assert "\n".join(bot.messages) == text


def test_run_summary_lists_failures():
    report = RunReport(
        items=[
            ItemResult(url="https://www.blocket.se/annons/a", status="created"),
            ItemResult(url="https://www.blocket.se/annons/b", error=ConnectionError("reset")),
        ],
        stubs_found=2,
        notifications_sent=1,
    )

    text = format_run_summary(report)

    assert "Nya: 1" in text
    assert "Fel: 1" in text
    assert "annons/b: ConnectionError" in text
