import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from livequiz.api.deps import get_app_settings
from livequiz.core.auth import check_admin_password, create_admin_token, require_roles
from livequiz.core.config import Settings
from livequiz.core.database import get_db
from livequiz.models.schemas import AdminAuthResult, AdminContact, AdminLeaderboardEntry, AdminLoginRequest
from livequiz.services import participants, ranking

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=AdminAuthResult, response_model_exclude_none=True)
def login(payload: AdminLoginRequest, settings: Settings = Depends(get_app_settings)):
    if settings.ADMIN_PASSWORD is None or not settings.ADMIN_PASSWORD.get_secret_value().strip():
        logger.error("Admin login attempted but ADMIN_PASSWORD is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error: admin password not configured")
    if not check_admin_password(settings, payload.password):
        logger.warning("Rejected admin login")
        return AdminAuthResult(success=False, message="Invalid password")
    return AdminAuthResult(success=True, token=create_admin_token(settings))


@router.get(
    "/leaderboard",
    response_model=List[AdminLeaderboardEntry],
    dependencies=[Depends(require_roles("admin"))],
)
def leaderboard(
    limit: Optional[int] = Query(None),
    difficulty: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return ranking.admin_leaderboard(db, difficulty, limit)


@router.get("/leaderboard/export", dependencies=[Depends(require_roles("admin"))])
def export_leaderboard(difficulty: Optional[str] = Query(None), db: Session = Depends(get_db)):
    body = participants.export_leaderboard_csv(db, difficulty)
    filename = f"leaderboard-{difficulty or 'all'}.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/contacts", response_model=List[AdminContact], dependencies=[Depends(require_roles("admin"))])
def contacts(db: Session = Depends(get_db)):
    return participants.contacts(db)


@router.delete("/participant/{participant_id}", dependencies=[Depends(require_roles("admin"))])
def delete_participant(participant_id: str, db: Session = Depends(get_db)):
    participants.delete_participant(db, participant_id)
    return {"message": "Participant deleted successfully"}
