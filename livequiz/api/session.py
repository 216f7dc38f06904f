from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from livequiz.api.deps import get_app_settings, get_quiz_engine
from livequiz.core.auth import create_session_token, read_session_id, require_session_id
from livequiz.core.config import Settings
from livequiz.core.database import get_db
from livequiz.models.schemas import (
    ResumeSessionResult, StartSessionRequest, StartSessionResult, SubmitEmailRequest, SubmitEmailResult,
)
from livequiz.services.quiz_engine import QuizEngine

router = APIRouter()


def _set_session_cookie(response: Response, settings: Settings, session_id: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(settings, session_id),
        max_age=settings.SESSION_COOKIE_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/start", response_model=StartSessionResult, response_model_exclude_none=True)
def start_session(
    payload: StartSessionRequest,
    response: Response,
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
    settings: Settings = Depends(get_app_settings),
):
    result = engine.start_session(db, payload.name, payload.phone, payload.difficulty, payload.avatar_url)
    if result.success:
        _set_session_cookie(response, settings, result.session_id)
    return result


@router.get(
    "/resume",
    response_model=ResumeSessionResult,
    responses={status.HTTP_204_NO_CONTENT: {"description": "No active session"}},
)
def resume_session(
    request: Request,
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
):
    session_id = read_session_id(request)
    result = engine.resume_session(db, session_id) if session_id else None
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result


@router.post("/submit-email", response_model=SubmitEmailResult)
def submit_email(
    payload: SubmitEmailRequest,
    session_id: str = Depends(require_session_id),
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
):
    return engine.submit_email(db, session_id, payload.email)
