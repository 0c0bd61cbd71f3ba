"""Unit tests for Telegram notifications."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from uspd_liquidator.config import TelegramConfig
from uspd_liquidator.notifications.telegram import TelegramNotifier


def _mock_session(status: int) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


@pytest.fixture()
def telegram_notifier() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(
            enabled=True,
            alert_bot_token="alert-tok",
            log_bot_token="log-tok",
            chat_id="12345",
        )
    )


@pytest.fixture()
def telegram_notifier_unconfigured() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(enabled=True, alert_bot_token="", log_bot_token="", chat_id="")
    )


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_alert_success(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(200)
        with patch("uspd_liquidator.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("uspd_liquidator.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("tx 0xabc", subject="Liquidation executed")

        assert result is True
        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert "botalert-tok" in url
        assert payload["text"].startswith("<b>Liquidation executed</b>")
        assert payload["disable_notification"] is False

    @pytest.mark.asyncio
    async def test_send_alert_failure(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(403)
        with patch("uspd_liquidator.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("uspd_liquidator.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("test alert")

        assert result is False

    @pytest.mark.asyncio
    async def test_send_log_uses_log_bot(self, telegram_notifier: TelegramNotifier) -> None:
        session = _mock_session(200)
        with patch("uspd_liquidator.notifications.telegram.aiohttp.ClientSession", return_value=session):
            with patch("uspd_liquidator.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_log("stats")

        assert result is True
        assert "botlog-tok" in session.post.call_args.args[0]
        assert session.post.call_args.kwargs["json"]["disable_notification"] is True

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(
        self, telegram_notifier_unconfigured: TelegramNotifier
    ) -> None:
        with patch("uspd_liquidator.notifications.telegram.aiohttp.ClientSession") as session_cls:
            result = await telegram_notifier_unconfigured.send_alert("test")

        assert result is False
        session_cls.assert_not_called()
