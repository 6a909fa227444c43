# sidebyside/services/notification_service.py
"""Chat notifications for new and finished votings.

Sends run after the HTTP response (FastAPI BackgroundTasks). Providers are
isolated from each other and failures only end up in the log.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

import httpx

from sidebyside.config import settings
from sidebyside.core.clock import utcnow
from sidebyside.core.logger import logger

TIMEOUT = 10.0


@dataclass
class NotificationData:
    title: str
    voting_id: str
    voting_url: str
    created_at: str
    event: str = "created"  # created | completed


@dataclass
class NotificationResult:
    success: bool
    provider: str
    error: str | None = None


class NotificationProvider(ABC):
    name = "base"

    def __init__(self, enabled: bool):
        self.enabled = enabled

    @abstractmethod
    def validate(self) -> bool:
        ...

    @abstractmethod
    async def send(self, data: NotificationData) -> NotificationResult:
        ...

    def format_message(self, data: NotificationData) -> str:
        if data.event == "completed":
            return f"🏁 Voting finished: **{data.title}**\nSee the results: {data.voting_url}"
        return f"🆕 New voting: **{data.title}**\nVote here: {data.voting_url}"


class MattermostProvider(NotificationProvider):
    name = "Mattermost"

    def __init__(self, enabled: bool, webhook_url: str):
        super().__init__(enabled)
        self.webhook_url = webhook_url

    def validate(self) -> bool:
        if not self.enabled:
            return False
        if not self.webhook_url:
            logger.warning("Mattermost webhook URL is not configured")
            return False
        parsed = urlparse(self.webhook_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning("Mattermost webhook URL has an invalid format")
            return False
        return True

    async def send(self, data):
        if not self.validate():
            return NotificationResult(False, self.name, "Provider is not configured")

        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.post(self.webhook_url, json={"text": self.format_message(data)})
                response.raise_for_status()
        except httpx.HTTPError as e:
            return NotificationResult(False, self.name, str(e))

        return NotificationResult(True, self.name)


class TelegramProvider(NotificationProvider):
    name = "Telegram"
    API_URL = "https://api.telegram.org/bot{token}/sendMessage"

    def __init__(self, enabled: bool, bot_token: str, chat_id: str):
        super().__init__(enabled)
        self.bot_token = bot_token
        self.chat_id = chat_id

    def validate(self) -> bool:
        if not self.enabled:
            return False
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram bot token or chat id is not configured")
            return False
        return True

    async def send(self, data):
        if not self.validate():
            return NotificationResult(False, self.name, "Provider is not configured")

        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.post(
                    self.API_URL.format(token=self.bot_token),
                    json={
                        "chat_id": self.chat_id,
                        "text": self.format_message(data).replace("**", ""),
                        "disable_web_page_preview": False,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            return NotificationResult(False, self.name, str(e))

        return NotificationResult(True, self.name)


class NotificationService:

    def __init__(self, providers: list[NotificationProvider]):
        self.providers = providers
        logger.info(f"Notification providers initialized: {len(self.enabled_providers)}")

    @classmethod
    def from_settings(cls) -> "NotificationService":
        providers = []
        if settings.mattermost_enabled:
            providers.append(MattermostProvider(True, settings.mattermost_webhook_url))
        if settings.telegram_enabled:
            providers.append(TelegramProvider(True, settings.telegram_bot_token, settings.telegram_chat_id))
        return cls(providers)

    @property
    def enabled_providers(self) -> list[NotificationProvider]:
        return [p for p in self.providers if p.enabled]

    async def notify_voting_created(self, voting_id: str, title: str) -> list[NotificationResult]:
        return await self._broadcast(self._build(voting_id, title, "created"))

    async def notify_voting_completed(self, voting_id: str, title: str) -> list[NotificationResult]:
        return await self._broadcast(self._build(voting_id, title, "completed"))

    def _build(self, voting_id: str, title: str, event: str) -> NotificationData:
        return NotificationData(
            title=title,
            voting_id=voting_id,
            voting_url=settings.voting_url(voting_id),
            created_at=utcnow().isoformat(),
            event=event,
        )

    async def _broadcast(self, data: NotificationData) -> list[NotificationResult]:
        providers = self.enabled_providers
        if not providers:
            logger.debug("No active notification providers")
            return []

        outcomes = await asyncio.gather(
            *(provider.send(data) for provider in providers),
            return_exceptions=True,
        )

        results = []
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.opt(exception=outcome).error(f"Unexpected {provider.name} notification error")
                results.append(NotificationResult(False, provider.name, str(outcome)))
            elif outcome.success:
                logger.info(f"{provider.name} notified about voting {data.voting_id} ({data.event})")
                results.append(outcome)
            else:
                logger.error(f"{provider.name} notification failed: {outcome.error}")
                results.append(outcome)

        return results


@lru_cache
def get_notification_service() -> NotificationService:
    return NotificationService.from_settings()
