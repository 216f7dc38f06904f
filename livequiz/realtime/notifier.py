"""
Best-effort delivery of session events to connected viewers.

Request handlers call ``publish`` after their transaction has committed. The
event goes onto a queue owned by the event loop; a single broadcaster task
renders it against a fresh database session and pushes the resulting messages
through the hub. Nothing that happens after ``publish`` can reach the request
that triggered it.
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from livequiz.core.clock import Clock, utcnow
from livequiz.models.orm import QuizSession
from livequiz.models.schemas import LeaderboardUpdate, ParticipantCompletion
from livequiz.realtime.events import (
    LEADERBOARD_UPDATE, PARTICIPANT_COMPLETED, PARTICIPANT_PROGRESS, PARTICIPANT_STARTED,
    ParticipantProgressed, ParticipantStarted, QuizEvent, SessionCompleted,
)
from livequiz.realtime.hub import ConnectionHub
from livequiz.services import ranking

logger = logging.getLogger(__name__)

Message = Tuple[str, dict]

TOP_THREE = 3


class Notifier:
    def __init__(
        self,
        hub: ConnectionHub,
        session_factory: sessionmaker,
        leaderboard_size: int = 10,
        maxsize: int = 1000,
        clock: Clock = utcnow,
    ) -> None:
        self.hub = hub
        self._session_factory = session_factory
        self._leaderboard_size = leaderboard_size
        self._maxsize = maxsize
        self._clock = clock
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._task = asyncio.create_task(self._run(), name="quiz-notifier")
        logger.info("Notifier started")

    async def stop(self) -> None:
        if not self.running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._loop = None
        logger.info("Notifier stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        if self._queue is None:
            return
        # let callbacks scheduled by publish() land in the queue first
        await asyncio.sleep(0)
        await self._queue.join()

    def publish(self, event: QuizEvent) -> None:
        """Hand an event to the broadcaster. Safe from any thread; never raises."""
        loop = self._loop
        if loop is None or not self.running:
            logger.warning("Notifier not running, dropping %s", event)
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, event)
        except RuntimeError:
            logger.warning("Event loop closed, dropping %s", event)

    def _enqueue(self, event: QuizEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Notifier queue full, dropping %s", event)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Failed to broadcast %s for session %s", type(event).__name__, event.session_id)
            finally:
                self._queue.task_done()

    async def dispatch(self, event: QuizEvent) -> None:
        messages = await run_in_threadpool(self.render, event)
        for message_type, data in messages:
            await self.hub.broadcast(message_type, data)

    # ---------- rendering ----------

    def render(self, event: QuizEvent) -> List[Message]:
        with self._session_factory() as db:
            now = self._clock()
            if isinstance(event, ParticipantStarted):
                return self._render_ongoing(db, event.session_id, now, PARTICIPANT_STARTED)
            if isinstance(event, ParticipantProgressed):
                return self._render_ongoing(db, event.session_id, now, PARTICIPANT_PROGRESS)
            if isinstance(event, SessionCompleted):
                return self._render_completion(db, event)
        raise TypeError(f"Unknown event {event!r}")

    def _render_ongoing(self, db, session_id: str, now: datetime, message_type: str) -> List[Message]:
        snapshot = ranking.ongoing_snapshot(db, session_id, now)
        if snapshot is None:
            logger.warning("Session %s not found for %s", session_id, message_type)
            return []
        logger.info(
            "Sending %s: %s Q%d", message_type, snapshot.name, snapshot.current_question_index + 1
        )
        return [(message_type, snapshot.to_json())]

    def _render_completion(self, db, event: SessionCompleted) -> List[Message]:
        session = db.scalar(select(QuizSession).where(QuizSession.id == event.session_id))
        if session is None:
            logger.warning("Session %s not found for completion", event.session_id)
            return []
        if session.completed_at is None:
            logger.warning("Session %s for %s has no completion time", session.id, session.participant.name)
            return []

        rank, _ = ranking.position(db, session.quiz_id, event.total_ms, session.completed_at)
        completion = ParticipantCompletion(
            session_id=session.id,
            name=session.participant.name,
            avatar_url=session.participant.avatar_url or "",
            difficulty=session.quiz.difficulty,
            total_ms=event.total_ms,
            ranking=rank,
            is_top_three=rank <= TOP_THREE,
            is_on_leaderboard=rank <= self._leaderboard_size,
        )
        board = LeaderboardUpdate(
            difficulty=session.quiz.difficulty,
            entries=ranking.top(db, session.quiz.difficulty, self._leaderboard_size),
        )
        logger.info("Sending %s: %s rank %d", PARTICIPANT_COMPLETED, completion.name, rank)
        return [
            (PARTICIPANT_COMPLETED, completion.to_json()),
            (LEADERBOARD_UPDATE, board.to_json()),
        ]
