"""Admin-side participant operations: contact list, CSV export, deletion."""
import csv
import io
import logging
from collections import Counter
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from livequiz.core.clock import as_utc
from livequiz.core.database import transaction
from livequiz.core.errors import NotFound
from livequiz.models.orm import Participant, Progress, QuizSession, Score
from livequiz.models.schemas import AdminContact
from livequiz.services import ranking

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["Position", "Name", "Phone", "Email", "Difficulty", "TotalMs", "CompletedAtUtc"]


def contacts(db: Session) -> List[AdminContact]:
    rows = db.scalars(
        select(Participant).where(Participant.email.is_not(None)).order_by(Participant.created_at.desc())
    ).all()
    return [
        AdminContact(
            participant_id=p.id,
            name=p.name,
            email=p.email,
            phone=p.phone,
            created_at_utc=as_utc(p.created_at),
        )
        for p in rows
    ]


def export_leaderboard_csv(db: Session, difficulty: Optional[str] = None) -> str:
    """Leaderboard as CSV; Position restarts at 1 for each difficulty."""
    entries = ranking.admin_leaderboard(db, difficulty, ranking.ADMIN_MAX_LIMIT)
    completed = ranking.count_completed(db, difficulty)
    if completed > len(entries):
        logger.warning(
            "Leaderboard export for %s truncated to %d of %d rows", difficulty or "all quizzes", len(entries), completed
        )

    positions = Counter()
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for entry in entries:
        positions[entry.difficulty] += 1
        writer.writerow([
            positions[entry.difficulty],
            entry.name,
            entry.phone,
            entry.email or "",
            entry.difficulty,
            entry.total_ms,
            entry.completed_at_utc.isoformat(),
        ])
    return buf.getvalue()


def delete_participant(db: Session, participant_id: str) -> None:
    """Remove a participant with every session, progress row and score they own."""
    if db.get(Participant, participant_id) is None:
        raise NotFound("Participant not found")

    session_ids = select(QuizSession.id).where(QuizSession.participant_id == participant_id)
    with transaction(db):
        db.execute(delete(Score).where(Score.session_id.in_(session_ids)))
        db.execute(delete(Progress).where(Progress.session_id.in_(session_ids)))
        db.execute(delete(QuizSession).where(QuizSession.participant_id == participant_id))
        db.execute(delete(Participant).where(Participant.id == participant_id))
    logger.info("Deleted participant %s", participant_id)
