"""Telegram notifications for liquidation outcomes."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)

_API_URL = "https://api.telegram.org/bot{token}/sendMessage"
_TIMEOUT_SECONDS = 15


class TelegramNotifier:
    """Send alerts (unmuted bot) and status logs (log bot) to one chat."""

    def __init__(self, config: TelegramConfig) -> None:
        self.alert_bot_token = config.alert_bot_token
        self.log_bot_token = config.log_bot_token
        self.chat_id = config.chat_id

    async def _send_message(
        self, message: str, bot_token: str, silent: bool = False
    ) -> bool:
        if not bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_notification": silent,
            "disable_web_page_preview": True,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                _API_URL.format(token=bot_token),
                json=payload,
                timeout=aiohttp.ClientTimeout(total=_TIMEOUT_SECONDS),
            ) as response:
                if response.status == 200:
                    return True
                logger.error("Failed to send Telegram message: HTTP %s", response.status)
                return False

    async def send_alert(self, message: str, subject: str = "") -> bool:
        text = f"<b>{subject}</b>\n\n{message}" if subject else message
        if await self._send_message(text, self.alert_bot_token, silent=False):
            logger.info("Telegram alert sent")
            return True
        return False

    async def send_log(self, message: str, silent: bool = True) -> bool:
        if await self._send_message(message, self.log_bot_token, silent=silent):
            logger.debug("Telegram log sent")
            return True
        return False
