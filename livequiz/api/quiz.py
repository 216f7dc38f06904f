from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from livequiz.api.deps import get_quiz_engine
from livequiz.core.auth import require_session_id
from livequiz.core.database import get_db
from livequiz.core.errors import PreconditionFailed
from livequiz.models.schemas import AnswerResult, CurrentQuestionResult, SkipResult, SubmitAnswerRequest
from livequiz.services.quiz_engine import QuizEngine

router = APIRouter()


@router.get("/current", response_model=CurrentQuestionResult, response_model_exclude_none=True)
def current_question(
    session_id: str = Depends(require_session_id),
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
):
    return engine.get_current(db, session_id)


@router.post("/answer", response_model=AnswerResult, response_model_exclude_none=True)
def submit_answer(
    payload: SubmitAnswerRequest,
    session_id: str = Depends(require_session_id),
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
):
    try:
        return engine.submit_answer(db, session_id, payload.answer_text)
    except PreconditionFailed as exc:
        body = AnswerResult(correct=False, message=exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.to_json())


@router.post("/skip", response_model=SkipResult, response_model_exclude_none=True)
def skip_question(
    session_id: str = Depends(require_session_id),
    db: Session = Depends(get_db),
    engine: QuizEngine = Depends(get_quiz_engine),
):
    try:
        return engine.skip_question(db, session_id)
    except PreconditionFailed as exc:
        body = SkipResult(success=False, message=exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.to_json())
