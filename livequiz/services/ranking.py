"""
Read-side leaderboard queries. Nothing in this module writes.

Standings order completed sessions by total time, then by completion time, so
two equal totals are ranked by who finished first.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from livequiz.core.clock import as_utc, to_epoch_ms
from livequiz.core.errors import NotFound
from livequiz.models.orm import Participant, Progress, Quiz, QuizQuestion, QuizSession, Score
from livequiz.models.schemas import (
    AdminLeaderboardEntry, LeaderboardEntry, MostRecentParticipant, MyScore, OngoingParticipant,
)

TOP_DEFAULT_LIMIT = 10
TOP_MAX_LIMIT = 100
ADMIN_DEFAULT_LIMIT = 100
ADMIN_MAX_LIMIT = 1000


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        return default
    return max(1, min(limit, maximum))


def _completed_scores():
    return (
        select(Score, QuizSession, Participant, Quiz)
        .join(QuizSession, QuizSession.id == Score.session_id)
        .join(Participant, Participant.id == QuizSession.participant_id)
        .join(Quiz, Quiz.id == QuizSession.quiz_id)
        .where(QuizSession.completed_at.is_not(None))
        .order_by(Score.total_ms.asc(), QuizSession.completed_at.asc())
    )


def find_quiz(db: Session, difficulty: str) -> Optional[Quiz]:
    return db.scalar(select(Quiz).where(Quiz.difficulty == difficulty))


def count_questions(db: Session, quiz_id: int) -> int:
    return db.scalar(select(func.count()).select_from(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id)) or 0


def count_completed(db: Session, difficulty: Optional[str] = None) -> int:
    stmt = (
        select(func.count())
        .select_from(Score)
        .join(QuizSession, QuizSession.id == Score.session_id)
        .join(Quiz, Quiz.id == QuizSession.quiz_id)
        .where(QuizSession.completed_at.is_not(None))
    )
    if difficulty:
        stmt = stmt.where(Quiz.difficulty == difficulty)
    return db.scalar(stmt) or 0


def top(db: Session, difficulty: Optional[str] = None, limit: Optional[int] = TOP_DEFAULT_LIMIT) -> List[LeaderboardEntry]:
    stmt = _completed_scores()
    if difficulty:
        stmt = stmt.where(Quiz.difficulty == difficulty)
    stmt = stmt.limit(clamp_limit(limit, TOP_DEFAULT_LIMIT, TOP_MAX_LIMIT))
    return [
        LeaderboardEntry(name=participant.name, total_ms=score.total_ms, avatar_url=participant.avatar_url or "")
        for score, _, participant, _ in db.execute(stmt).all()
    ]


def position(db: Session, quiz_id: int, total_ms: int, completed_at: datetime) -> Tuple[int, int]:
    """(1-based position, number of completed sessions) within one quiz."""
    base = (
        select(func.count())
        .select_from(Score)
        .join(QuizSession, QuizSession.id == Score.session_id)
        .where(QuizSession.quiz_id == quiz_id, QuizSession.completed_at.is_not(None))
    )
    ahead = db.scalar(
        base.where(
            or_(
                Score.total_ms < total_ms,
                and_(Score.total_ms == total_ms, QuizSession.completed_at < completed_at),
            )
        )
    ) or 0
    total = db.scalar(base) or 0
    return ahead + 1, total


def my_score(db: Session, session_id: str, difficulty: Optional[str] = None) -> MyScore:
    row = db.execute(
        _completed_scores().where(QuizSession.id == session_id)
    ).first()
    if row is None:
        raise NotFound("No completed score for this session")
    score, session, participant, quiz = row
    if difficulty and quiz.difficulty != difficulty:
        raise NotFound("No completed score for this difficulty")
    pos, total = position(db, quiz.id, score.total_ms, session.completed_at)
    return MyScore(
        name=participant.name,
        total_ms=score.total_ms,
        position=pos,
        total_participants=total,
        completed_at=as_utc(session.completed_at),
        difficulty=quiz.difficulty,
    )


def most_recent(db: Session, difficulty: str, now: datetime, window: timedelta) -> Optional[MostRecentParticipant]:
    """Latest completion for the quiz inside the trailing window, if any."""
    quiz = find_quiz(db, difficulty) if difficulty else None
    if quiz is None:
        raise NotFound("No quiz found for selected difficulty")
    row = db.execute(
        _completed_scores()
        .where(QuizSession.quiz_id == quiz.id, QuizSession.completed_at >= now - window)
        .order_by(None)
        .order_by(QuizSession.completed_at.desc())
        .limit(1)
    ).first()
    if row is None:
        return None
    score, session, participant, _ = row
    pos, _ = position(db, quiz.id, score.total_ms, session.completed_at)
    return MostRecentParticipant(
        name=participant.name,
        total_ms=score.total_ms,
        avatar_url=participant.avatar_url or "",
        completed_at=as_utc(session.completed_at),
        position=pos,
    )


def _ongoing_query():
    # one row per session: penalties and last activity are aggregated in SQL
    activity = (
        select(
            Progress.session_id.label("session_id"),
            func.coalesce(func.sum(Progress.penalty_ms), 0).label("penalty_ms"),
            func.max(Progress.started_at).label("last_started_at"),
        )
        .group_by(Progress.session_id)
        .subquery()
    )
    question_counts = (
        select(QuizQuestion.quiz_id.label("quiz_id"), func.count().label("total_questions"))
        .group_by(QuizQuestion.quiz_id)
        .subquery()
    )
    last_activity = func.coalesce(activity.c.last_started_at, QuizSession.started_at)
    stmt = (
        select(
            QuizSession,
            Participant,
            Quiz.difficulty,
            func.coalesce(activity.c.penalty_ms, 0),
            last_activity,
            func.coalesce(question_counts.c.total_questions, 0),
        )
        .join(Participant, Participant.id == QuizSession.participant_id)
        .join(Quiz, Quiz.id == QuizSession.quiz_id)
        .outerjoin(activity, activity.c.session_id == QuizSession.id)
        .outerjoin(question_counts, question_counts.c.quiz_id == QuizSession.quiz_id)
    )
    return stmt, last_activity


def _to_ongoing(row, last_activity_override: Optional[datetime] = None) -> OngoingParticipant:
    session, participant, difficulty, penalty_ms, last_activity, total_questions = row
    if last_activity_override is not None:
        last_activity = last_activity_override
    elif session.completed_at is not None:
        last_activity = session.completed_at
    return OngoingParticipant(
        session_id=session.id,
        name=participant.name,
        avatar_url=participant.avatar_url or "",
        difficulty=difficulty,
        started_at_ms=to_epoch_ms(session.started_at),
        last_activity_ms=to_epoch_ms(last_activity),
        current_question_index=session.current_question_index,
        total_questions=int(total_questions),
        total_penalty_ms=int(penalty_ms),
        completed=session.completed_at is not None,
    )


def ongoing(
    db: Session,
    now: datetime,
    recent_window: timedelta,
    stale_after: timedelta,
    difficulty: Optional[str] = None,
) -> List[OngoingParticipant]:
    """Sessions still playing (and recently active) plus those that just finished."""
    stmt, last_activity = _ongoing_query()
    stmt = stmt.where(
        or_(
            and_(QuizSession.completed_at.is_(None), last_activity >= now - stale_after),
            QuizSession.completed_at >= now - recent_window,
        )
    ).order_by(QuizSession.started_at.desc())
    if difficulty:
        stmt = stmt.where(Quiz.difficulty == difficulty)
    return [_to_ongoing(row) for row in db.execute(stmt).all()]


def ongoing_snapshot(db: Session, session_id: str, now: Optional[datetime] = None) -> Optional[OngoingParticipant]:
    stmt, _ = _ongoing_query()
    row = db.execute(stmt.where(QuizSession.id == session_id)).first()
    if row is None:
        return None
    return _to_ongoing(row, last_activity_override=now)


def admin_leaderboard(db: Session, difficulty: Optional[str] = None, limit: Optional[int] = ADMIN_DEFAULT_LIMIT) -> List[AdminLeaderboardEntry]:
    stmt = _completed_scores()
    if difficulty:
        stmt = stmt.where(Quiz.difficulty == difficulty)
    stmt = stmt.limit(clamp_limit(limit, ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT))
    return [
        AdminLeaderboardEntry(
            participant_id=participant.id,
            name=participant.name,
            phone=participant.phone,
            email=participant.email,
            total_ms=score.total_ms,
            avatar_url=participant.avatar_url or "",
            difficulty=quiz.difficulty,
            completed_at_utc=as_utc(session.completed_at),
        )
        for score, session, participant, quiz in db.execute(stmt).all()
    ]
