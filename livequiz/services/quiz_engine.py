"""
Per-participant quiz state machine.

A session moves NotStarted -> InProgress -> Completed and never back. The only
pointer into the quiz is ``current_question_index``; the question it points to
is the QuizQuestion whose sequence is ``index + 1``. Every question gets one
Progress row, created the first time it is served, which accumulates the
elapsed time and penalties that make up the session total.

Answer and skip each run in a single transaction with the session row locked,
so duplicate submissions serialize. Events are published only after commit.
"""
import logging
import random
import re
from typing import Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from livequiz.core.clock import Clock, as_utc, elapsed_ms, utcnow
from livequiz.core.database import transaction
from livequiz.core.errors import NotAuthenticated, PreconditionFailed, QuizError, ValidationFailed
from livequiz.models.orm import Participant, Progress, QuestionType, QuizQuestion, QuizSession, Score
from livequiz.models.schemas import (
    AnswerResult, CurrentQuestionResult, ResumeSessionResult, SkipResult, StartSessionResult, SubmitEmailResult,
)
from livequiz.realtime.events import (
    ParticipantProgressed, ParticipantStarted, Publisher, QuizEvent, SessionCompleted,
)
from livequiz.services import ranking

logger = logging.getLogger(__name__)

WRONG_ANSWER_PENALTY_MS = 10_000
SKIP_PENALTY_MS = 60_000

NAME_MAX_LENGTH = 64
PHONE_PATTERN = re.compile(r"\+\d{1,5}\d{4,15}")

ALREADY_TAKEN = "You've already taken this quiz. Thanks!"
EMAIL_TAKEN = "This email address is already registered"

# tags the web client switches on; stored values stay the enum names
WIRE_TYPES = {
    QuestionType.MULTIPLE_CHOICE: "MC",
    QuestionType.CODE_FIX: "CodeFix",
}


def _no_publish(event: QuizEvent) -> None:
    pass


class QuizEngine:
    def __init__(
        self,
        publisher: Optional[Publisher] = None,
        clock: Clock = utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._publish = publisher or _no_publish
        self._clock = clock
        self._rng = rng or random.Random()

    # ---------- lookups ----------

    def _load_session(self, db: Session, session_id: str, for_update: bool = False) -> QuizSession:
        stmt = select(QuizSession).where(QuizSession.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        session = db.scalar(stmt)
        if session is None:
            raise NotAuthenticated()
        return session

    def _current_entry(self, db: Session, session: QuizSession) -> Optional[QuizQuestion]:
        return db.scalar(
            select(QuizQuestion)
            .options(joinedload(QuizQuestion.question))
            .where(
                QuizQuestion.quiz_id == session.quiz_id,
                QuizQuestion.sequence == session.current_question_index + 1,
            )
        )

    def _has_question_at(self, db: Session, quiz_id: int, index: int) -> bool:
        found = db.scalar(
            select(QuizQuestion.id).where(QuizQuestion.quiz_id == quiz_id, QuizQuestion.sequence == index + 1)
        )
        return found is not None

    def _progress_for(self, db: Session, session_id: str, question_id: int) -> Optional[Progress]:
        return db.scalar(
            select(Progress).where(Progress.session_id == session_id, Progress.question_id == question_id)
        )

    def _totals(self, db: Session, session_id: str) -> Tuple[int, int]:
        """(total elapsed ms, total penalty ms) summed over the session's Progress rows."""
        db.flush()
        total, penalty = db.execute(
            select(
                func.coalesce(func.sum(func.coalesce(Progress.duration_ms, 0) + Progress.penalty_ms), 0),
                func.coalesce(func.sum(Progress.penalty_ms), 0),
            ).where(Progress.session_id == session_id)
        ).one()
        return int(total), int(penalty)

    def total_time_ms(self, db: Session, session: QuizSession) -> int:
        score = db.get(Score, session.id)
        if score is not None:
            return score.total_ms
        return self._totals(db, session.id)[0]

    def shuffle_choices(self, choices: list) -> list:
        shuffled = list(choices)
        self._rng.shuffle(shuffled)
        return shuffled

    def _notify(self, event: Optional[QuizEvent]) -> None:
        if event is None:
            return
        try:
            self._publish(event)
        except Exception:
            logger.exception("Could not publish %s for session %s", type(event).__name__, event.session_id)

    # ---------- session lifecycle ----------

    def start_session(self, db: Session, name: str, phone: str, difficulty: str, avatar_url: str = "") -> StartSessionResult:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Name is required")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationFailed(f"Name must be at most {NAME_MAX_LENGTH} characters")

        phone = (phone or "").strip()
        if not PHONE_PATTERN.fullmatch(phone):
            raise ValidationFailed("Phone must be a valid international number")

        quiz = ranking.find_quiz(db, (difficulty or "").strip())
        if quiz is None:
            raise ValidationFailed("No quiz found for selected difficulty")
        total_questions = ranking.count_questions(db, quiz.id)
        if total_questions == 0:
            raise ValidationFailed("Selected quiz has no questions")

        # a unique-constraint race is retried once; the second pass sees the winner's rows
        for attempt in range(2):
            try:
                with transaction(db):
                    result = self._open_session(db, name, phone, quiz.id, avatar_url, total_questions)
            except IntegrityError:
                logger.info("Concurrent start on quiz %s (attempt %d)", quiz.difficulty, attempt + 1)
                continue
            if result.success:
                logger.info("Session %s started on %s", result.session_id, quiz.difficulty)
                self._notify(ParticipantStarted(result.session_id))
            return result
        return StartSessionResult(success=False, message=ALREADY_TAKEN)

    def _open_session(self, db: Session, name: str, phone: str, quiz_id: int, avatar_url: str, total_questions: int) -> StartSessionResult:
        now = self._clock()
        participant = db.scalar(select(Participant).where(Participant.phone == phone))
        if participant is None:
            participant = Participant(name=name, phone=phone, avatar_url=avatar_url or "", created_at=now)
            db.add(participant)
            db.flush()
        else:
            taken = db.scalar(
                select(QuizSession.id).where(
                    QuizSession.participant_id == participant.id, QuizSession.quiz_id == quiz_id
                )
            )
            if taken is not None:
                return StartSessionResult(success=False, message=ALREADY_TAKEN)

        session = QuizSession(
            participant_id=participant.id, quiz_id=quiz_id, current_question_index=0, started_at=now
        )
        db.add(session)
        db.flush()
        return StartSessionResult(success=True, total_questions=total_questions, session_id=session.id)

    def resume_session(self, db: Session, session_id: str) -> Optional[ResumeSessionResult]:
        session = db.get(QuizSession, session_id)
        if session is None:
            return None
        return ResumeSessionResult(
            question_index=session.current_question_index,
            finished=session.completed_at is not None,
            participant_name=session.participant.name,
            participant_phone=session.participant.phone,
            total_time_ms=self.total_time_ms(db, session),
            total_questions=ranking.count_questions(db, session.quiz_id),
        )

    def submit_email(self, db: Session, session_id: str, email: str) -> SubmitEmailResult:
        email = (email or "").strip()
        if not email:
            raise ValidationFailed("Email is required")
        try:
            normalized = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError:
            raise ValidationFailed("Email is not valid")

        session = self._load_session(db, session_id)
        if session.completed_at is None:
            raise ValidationFailed("Complete the quiz before registering an email")
        participant = session.participant
        if participant.email:
            return SubmitEmailResult(success=False, message="An email is already registered for you")
        if db.scalar(select(Participant.id).where(Participant.email == normalized)) is not None:
            return SubmitEmailResult(success=False, message=EMAIL_TAKEN)

        try:
            with transaction(db):
                participant.email = normalized
        except IntegrityError:
            return SubmitEmailResult(success=False, message=EMAIL_TAKEN)
        return SubmitEmailResult(success=True, message="Email successfully registered")

    # ---------- questions ----------

    def get_current(self, db: Session, session_id: str) -> CurrentQuestionResult:
        session = self._load_session(db, session_id)
        started_at = as_utc(session.started_at)
        if session.completed_at is not None:
            return CurrentQuestionResult(
                done=True, total_ms=self.total_time_ms(db, session), session_started_at_utc=started_at
            )

        entry = self._current_entry(db, session)
        if entry is None:
            return CurrentQuestionResult(
                done=True, total_ms=self.total_time_ms(db, session), session_started_at_utc=started_at
            )
        question = entry.question
        index = session.current_question_index

        if self._progress_for(db, session.id, question.id) is None:
            try:
                with transaction(db):
                    db.add(Progress(
                        session_id=session.id,
                        question_id=question.id,
                        started_at=self._clock(),
                        penalty_ms=0,
                        is_correct=False,
                    ))
            except IntegrityError:
                logger.info("Progress for session %s question %s already created", session_id, question.id)

        fields = {}
        payload = question.payload
        if question.type == QuestionType.MULTIPLE_CHOICE and payload:
            fields["choices"] = self.shuffle_choices(payload)
        elif question.type == QuestionType.CODE_FIX and isinstance(payload, dict):
            fields["initial_code"] = payload.get("initialCode")
            fields["test_code"] = payload.get("testCode")

        return CurrentQuestionResult(
            done=False,
            question_index=index,
            type=WIRE_TYPES[question.type],
            prompt=question.prompt,
            session_started_at_utc=started_at,
            **fields,
        )

    def _lock_current(self, db: Session, session_id: str) -> Tuple[QuizSession, QuizQuestion, Progress]:
        session = self._load_session(db, session_id, for_update=True)
        if session.completed_at is not None:
            raise PreconditionFailed("Quiz already completed")
        entry = self._current_entry(db, session)
        if entry is None:
            raise PreconditionFailed("Question not found")
        progress = self._progress_for(db, session.id, entry.question_id)
        if progress is None:
            raise PreconditionFailed("Progress not found")
        return session, entry, progress

    def _advance(self, db: Session, session: QuizSession) -> Tuple[Optional[int], QuizEvent]:
        """Move past the current question; completes the session after the last one."""
        session.current_question_index += 1
        if self._has_question_at(db, session.quiz_id, session.current_question_index):
            return None, ParticipantProgressed(session.id)

        total_ms, _ = self._totals(db, session.id)
        session.completed_at = self._clock()
        db.add(Score(session_id=session.id, total_ms=total_ms))
        logger.info("Session %s completed in %d ms", session.id, total_ms)
        return total_ms, SessionCompleted(session.id, total_ms)

    def submit_answer(self, db: Session, session_id: str, answer_text: str) -> AnswerResult:
        try:
            with transaction(db):
                result, event = self._answer(db, session_id, answer_text)
        except QuizError:
            raise
        except Exception:
            logger.exception("Error processing answer for session %s", session_id)
            raise
        self._notify(event)
        return result

    def _answer(self, db: Session, session_id: str, answer_text: str) -> Tuple[AnswerResult, Optional[QuizEvent]]:
        session, entry, progress = self._lock_current(db, session_id)

        if progress.is_correct:
            # duplicate submission: report the earlier outcome without touching anything
            total_ms, total_penalty = self._totals(db, session.id)
            if not self._has_question_at(db, session.quiz_id, session.current_question_index + 1):
                return AnswerResult(
                    correct=True, quiz_completed=True, total_ms=total_ms, total_penalty_ms=total_penalty
                ), None
            return AnswerResult(correct=True, total_penalty_ms=total_penalty), None

        answer = (answer_text or "").strip()
        if answer != entry.question.correct_answer:
            progress.penalty_ms += WRONG_ANSWER_PENALTY_MS
            _, total_penalty = self._totals(db, session.id)
            return AnswerResult(
                correct=False, penalty_ms_added=WRONG_ANSWER_PENALTY_MS, total_penalty_ms=total_penalty
            ), ParticipantProgressed(session.id)

        progress.duration_ms = elapsed_ms(progress.started_at, self._clock())
        progress.is_correct = True
        total_ms, event = self._advance(db, session)
        _, total_penalty = self._totals(db, session.id)
        if total_ms is not None:
            return AnswerResult(
                correct=True, quiz_completed=True, total_ms=total_ms, total_penalty_ms=total_penalty
            ), event
        return AnswerResult(correct=True, total_penalty_ms=total_penalty), event

    def skip_question(self, db: Session, session_id: str) -> SkipResult:
        try:
            with transaction(db):
                result, event = self._skip(db, session_id)
        except QuizError:
            raise
        except Exception:
            logger.exception("Error skipping question for session %s", session_id)
            raise
        self._notify(event)
        return result

    def _skip(self, db: Session, session_id: str) -> Tuple[SkipResult, QuizEvent]:
        session, _, progress = self._lock_current(db, session_id)
        progress.duration_ms = elapsed_ms(progress.started_at, self._clock())
        progress.is_correct = False
        progress.penalty_ms += SKIP_PENALTY_MS
        total_ms, event = self._advance(db, session)
        return SkipResult(
            success=True,
            penalty_ms=SKIP_PENALTY_MS,
            quiz_completed=total_ms is not None,
            total_ms=total_ms,
        ), event
