import asyncio
from datetime import timedelta

import pytest

from conftest import auth_headers
from sidebyside.core.clock import utcnow
from sidebyside.models import Session, Voting
from sidebyside.services import auth_service, cleanup_service
from sidebyside.services.cleanup_service import CleanupScheduler


class RecordingNotifier:
    def __init__(self):
        self.completed = []

    async def notify_voting_completed(self, voting_id, title):
        self.completed.append((voting_id, title))


@pytest.fixture
def notifier(monkeypatch):
    recorder = RecordingNotifier()
    monkeypatch.setattr(cleanup_service, "get_notification_service", lambda: recorder)
    return recorder


def add_sessions(db, user, count):
    now = utcnow()
    for index in range(count):
        db.add(Session(
            id=f"{user.id}-{index}",
            user_id=user.id,
            refresh_token_hash="x",
            expires_at=now + timedelta(days=365, minutes=index),
        ))
    db.commit()


def test_old_user_sessions_are_trimmed_to_the_newest(db, make_user):
    alice, bob = make_user(), make_user("bob@example.com")
    add_sessions(db, alice, 4)
    add_sessions(db, bob, 2)

    assert auth_service.cleanup_old_user_sessions(db, keep=2) == 2

    remaining = sorted(s.id for s in db.query(Session).filter(Session.user_id == alice.id))
    assert remaining == [f"{alice.id}-2", f"{alice.id}-3"]
    assert db.query(Session).filter(Session.user_id == bob.id).count() == 2


def test_run_cleanup_applies_session_cap(session_factory, db, make_user):
    alice = make_user()
    add_sessions(db, alice, cleanup_service.USER_SESSION_LIMIT + 3)
    scheduler = CleanupScheduler(session_factory)

    counts = asyncio.run(scheduler.run_cleanup())

    assert counts["trimmed_sessions"] == 3
    assert counts["deleted_sessions"] == 0
    assert scheduler.last_cleanup is not None


def test_expired_votings_are_announced_once(session_factory, db, make_user, make_voting, notifier):
    alice = make_user()
    ended = make_voting(alice, ended=True, title="Old logo")
    make_voting(alice)
    scheduler = CleanupScheduler(session_factory)

    assert asyncio.run(scheduler.notify_finished_votings()) == 1
    assert asyncio.run(scheduler.notify_finished_votings()) == 0

    assert notifier.completed == [(ended.id, "Old logo")]
    db.expire_all()
    assert db.get(Voting, ended.id).complete_notified is True


def test_scheduler_loops_run_until_stopped(session_factory, make_user, make_voting, notifier, monkeypatch):
    # Both loops would otherwise share the single test connection across threads
    monkeypatch.setattr(cleanup_service, "cleanup_auth_data", lambda db: {})
    ended = make_voting(make_user(), ended=True)
    scheduler = CleanupScheduler(session_factory)

    async def scenario():
        scheduler.start()
        scheduler.start()  # second start is a no-op
        assert scheduler.is_running

        for _ in range(100):
            if notifier.completed and scheduler.next_cleanup:
                break
            await asyncio.sleep(0.05)

        await scheduler.stop()

    asyncio.run(scenario())

    assert notifier.completed == [(ended.id, ended.title)]
    assert scheduler.last_cleanup is not None
    assert scheduler.status() == {
        "is_running": False,
        "last_cleanup": scheduler.last_cleanup,
        "next_cleanup": None,
    }


def test_cleanup_status_endpoint(client, make_user):
    assert client.get("/api/auth/cleanup/status").status_code == 401

    response = client.get("/api/auth/cleanup/status", headers=auth_headers(make_user()))

    assert response.status_code == 200
    assert response.json()["is_running"] is False
