"""
Telegram notifications for automation runs.

Best-effort side channel: delivery failures are logged and never raised,
so a notification can not change the outcome of the calling operation.
"""
import html
import logging
from typing import Optional

import httpx

from printbridge.config import Settings

logger = logging.getLogger(__name__)


class TelegramReporter:
    """Posts step-by-step status messages to a Telegram chat."""

    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        enabled: bool = False,
        dry_run: bool = False,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled
        self.dry_run = dry_run
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, dry_run: Optional[bool] = None, **kwargs) -> "TelegramReporter":
        return cls(
            bot_token=settings.TELEGRAM_BOT_TOKEN,
            chat_id=settings.TELEGRAM_CHAT_ID,
            enabled=settings.telegram_enabled,
            dry_run=settings.FULFILLMENT_DRY_RUN if dry_run is None else dry_run,
            api_url=settings.TELEGRAM_API_URL,
            **kwargs,
        )

    def _pick_icon(self, step: str) -> str:
        s = step.lower()
        if "start" in s:
            return "🚀"
        if "complete" in s or "processed" in s or "success" in s:
            return "✅"
        if "error" in s or "failed" in s or "rejected" in s:
            return "❌"
        if "update" in s:
            return "🛠️"
        if "transition" in s:
            return "🔄"
        return "🧪" if self.dry_run else "🤖"

    def format_message(self, step: str, details: Optional[str] = None) -> str:
        """Build the HTML message body."""
        mode_label = "🧪 Dry-run" if self.dry_run else "🤖 Automation"
        header = f"{self._pick_icon(step)} {step}"

        lines = [f"<b>{html.escape(mode_label, quote=False)}:</b> <b>{html.escape(header, quote=False)}</b>"]
        if details:
            lines.append(f"<pre>{html.escape(details, quote=False)}</pre>")
        return "\n".join(lines)

    async def _post_message(self, text: str) -> bool:
        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(url, json={
                    "chat_id": self.chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                })

                if response.status_code == 200:
                    return True
                logger.error(f"Failed to deliver Telegram message: {response.text}")
                return False

        except Exception as e:
            logger.error(f"Telegram request error: {e}")
            return False

    async def notify(self, step: str, details: Optional[str] = None) -> bool:
        """
        Log a step and forward it to Telegram when enabled.

        Returns True only if Telegram accepted the message.
        """
        mode = "dry-run" if self.dry_run else "automation"
        logger.info(f"[{mode}] {step}" + (f": {details}" if details else ""))

        if not self.enabled:
            return False

        return await self._post_message(self.format_message(step, details))
