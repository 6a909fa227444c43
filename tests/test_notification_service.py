import asyncio

import httpx

from sidebyside.services.notification_service import (
    MattermostProvider,
    NotificationProvider,
    NotificationResult,
    NotificationService,
    TelegramProvider,
)


class RecordingProvider(NotificationProvider):
    name = "Recording"

    def __init__(self):
        super().__init__(True)
        self.sent = []

    def validate(self):
        return True

    async def send(self, data):
        self.sent.append(data)
        return NotificationResult(True, self.name)


class ExplodingProvider(NotificationProvider):
    name = "Exploding"

    def __init__(self):
        super().__init__(True)

    def validate(self):
        return True

    async def send(self, data):
        raise RuntimeError("boom")


def test_one_failing_provider_does_not_block_the_others():
    recording = RecordingProvider()
    service = NotificationService([ExplodingProvider(), recording])

    results = asyncio.run(service.notify_voting_created("v1", "Logo A or B"))

    assert [r.success for r in results] == [False, True]
    assert results[0].error == "boom"
    assert len(recording.sent) == 1
    assert recording.sent[0].voting_id == "v1"
    assert recording.sent[0].voting_url.endswith("/#/v/v1")


def test_completed_event_uses_completed_message():
    recording = RecordingProvider()
    service = NotificationService([recording])

    asyncio.run(service.notify_voting_completed("v2", "Hero image"))

    data = recording.sent[0]
    assert data.event == "completed"
    assert "finished" in recording.format_message(data)


def test_disabled_providers_are_skipped():
    service = NotificationService([MattermostProvider(False, "https://chat.example.com/hooks/x")])

    assert service.enabled_providers == []
    assert asyncio.run(service.notify_voting_created("v1", "t")) == []


def test_mattermost_validation():
    assert MattermostProvider(True, "https://chat.example.com/hooks/x").validate()
    assert not MattermostProvider(True, "").validate()
    assert not MattermostProvider(True, "ftp://chat.example.com").validate()


def test_telegram_requires_token_and_chat():
    assert not TelegramProvider(True, "", "123").validate()
    assert TelegramProvider(True, "token", "123").validate()


def test_mattermost_http_error_becomes_failed_result(monkeypatch):
    class FailingClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def post(self, url, json):
            raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "AsyncClient", FailingClient)
    provider = MattermostProvider(True, "https://chat.example.com/hooks/x")
    service = NotificationService([provider])

    results = asyncio.run(service.notify_voting_created("v1", "t"))

    assert results == [NotificationResult(False, "Mattermost", "connection refused")]
