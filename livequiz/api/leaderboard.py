from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from livequiz.api.deps import get_app_settings, get_clock
from livequiz.core.auth import require_session_id
from livequiz.core.clock import Clock
from livequiz.core.config import Settings
from livequiz.core.database import get_db
from livequiz.models.schemas import LeaderboardEntry, MostRecentParticipant, MyScore, OngoingParticipant
from livequiz.services import ranking

router = APIRouter()


@router.get("/top", response_model=List[LeaderboardEntry])
def top(
    limit: Optional[int] = Query(None),
    difficulty: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return ranking.top(db, difficulty, limit)


@router.get("/my-score", response_model=MyScore)
def my_score(
    difficulty: Optional[str] = Query(None),
    session_id: str = Depends(require_session_id),
    db: Session = Depends(get_db),
):
    return ranking.my_score(db, session_id, difficulty)


@router.get(
    "/most-recent",
    response_model=MostRecentParticipant,
    responses={status.HTTP_204_NO_CONTENT: {"description": "Nobody finished recently"}},
)
def most_recent(
    difficulty: str = Query(""),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
):
    result = ranking.most_recent(db, difficulty, clock(), timedelta(seconds=settings.RECENT_WINDOW_SECONDS))
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result


@router.get("/ongoing", response_model=List[OngoingParticipant])
def ongoing(
    difficulty: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
):
    return ranking.ongoing(
        db,
        clock(),
        recent_window=timedelta(seconds=settings.RECENT_WINDOW_SECONDS),
        stale_after=timedelta(minutes=settings.ONGOING_STALE_MINUTES),
        difficulty=difficulty,
    )
