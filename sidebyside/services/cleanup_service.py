# sidebyside/services/cleanup_service.py
"""
Background housekeeping.

Two loops run on the app's event loop once started:
- auth cleanup every 24 hours (expired rows, then the per-user session cap)
- a completion watcher every minute that announces votings whose time ran out
"""
import asyncio
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sidebyside.core.clock import utcnow
from sidebyside.core.logger import logger
from sidebyside.database import SessionLocal
from sidebyside.services import auth_service, voting_service
from sidebyside.services.notification_service import get_notification_service

CLEANUP_INTERVAL_HOURS = 24
COMPLETION_CHECK_INTERVAL_SECONDS = 60
USER_SESSION_LIMIT = 10


def cleanup_auth_data(db: Session) -> dict:
    counts = auth_service.cleanup_expired_auth_data(db)
    counts["trimmed_sessions"] = auth_service.cleanup_old_user_sessions(db, USER_SESSION_LIMIT)
    return counts


def claim_finished(db: Session) -> list[tuple[str, str]]:
    """(id, title) of every voting whose completion notice this call claimed"""
    return [(voting.id, voting.title) for voting in voting_service.claim_finished_votings(db)]


class CleanupScheduler:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory
        self.last_cleanup: Optional[datetime] = None
        self.next_cleanup: Optional[datetime] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def _in_session(self, func):
        db = self.session_factory()
        try:
            return func(db)
        finally:
            db.close()

    async def run_cleanup(self) -> dict:
        counts = await run_in_threadpool(self._in_session, cleanup_auth_data)
        self.last_cleanup = utcnow()
        return counts

    async def notify_finished_votings(self) -> int:
        finished = await run_in_threadpool(self._in_session, claim_finished)

        notifier = get_notification_service()
        for voting_id, title in finished:
            await notifier.notify_voting_completed(voting_id, title)
            logger.info(f"Completion of voting {voting_id} announced")
        return len(finished)

    async def _cleanup_loop(self):
        while True:
            try:
                await self.run_cleanup()
            except Exception:
                logger.exception("Scheduled auth cleanup failed")
            self.next_cleanup = utcnow() + timedelta(hours=CLEANUP_INTERVAL_HOURS)
            await asyncio.sleep(CLEANUP_INTERVAL_HOURS * 60 * 60)

    async def _completion_loop(self):
        while True:
            try:
                await self.notify_finished_votings()
            except Exception:
                logger.exception("Completion check failed")
            await asyncio.sleep(COMPLETION_CHECK_INTERVAL_SECONDS)

    def start(self) -> None:
        """Must be called from a running event loop"""
        if self.is_running:
            logger.info("Cleanup scheduler already running")
            return

        self._tasks = [
            asyncio.create_task(self._cleanup_loop()),
            asyncio.create_task(self._completion_loop()),
        ]
        logger.info(f"Cleanup scheduler started (every {CLEANUP_INTERVAL_HOURS}h)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks = []
        self.next_cleanup = None
        logger.info("Cleanup scheduler stopped")

    def status(self) -> dict:
        return {
            "is_running": self.is_running,
            "last_cleanup": self.last_cleanup,
            "next_cleanup": self.next_cleanup,
        }


cleanup_scheduler = CleanupScheduler()
