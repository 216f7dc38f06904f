import enum
import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livequiz.core.clock import utcnow
from livequiz.core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MultipleChoice"
    CODE_FIX = "CodeFix"


class SessionState(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[Optional[str]] = mapped_column(String(128), unique=True)
    avatar_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    sessions: Mapped[List["QuizSession"]] = relationship(
        back_populates="participant", cascade="all, delete-orphan", passive_deletes=True
    )


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    quiz_questions: Mapped[List["QuizQuestion"]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan", order_by="QuizQuestion.sequence"
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[QuestionType] = mapped_column(SQLEnum(QuestionType), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    correct_answer: Mapped[str] = mapped_column(String(512), nullable=False)
    # list of choices for MultipleChoice, {"initialCode", "testCode"} for CodeFix
    payload: Mapped[Optional[Any]] = mapped_column(JSON)


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"
    __table_args__ = (
        UniqueConstraint("quiz_id", "sequence", name="uq_quiz_questions_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quiz_id: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based

    quiz: Mapped["Quiz"] = relationship(back_populates="quiz_questions")
    question: Mapped["Question"] = relationship()


class QuizSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        UniqueConstraint("participant_id", "quiz_id", name="uq_sessions_participant_quiz"),
        Index("idx_sessions_quiz_completed", "quiz_id", "completed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    participant_id: Mapped[str] = mapped_column(
        ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    quiz_id: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="RESTRICT"), nullable=False)
    current_question_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    participant: Mapped["Participant"] = relationship(back_populates="sessions")
    quiz: Mapped["Quiz"] = relationship()
    progresses: Mapped[List["Progress"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )
    score: Mapped[Optional["Score"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", passive_deletes=True, uselist=False
    )

    @property
    def state(self) -> SessionState:
        if self.completed_at is not None:
            return SessionState.COMPLETED
        if self.current_question_index == 0 and not self.progresses:
            return SessionState.NOT_STARTED
        return SessionState.IN_PROGRESS


class Progress(Base):
    __tablename__ = "progresses"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_progresses_session_question"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    penalty_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    session: Mapped["QuizSession"] = relationship(back_populates="progresses")


class Score(Base):
    __tablename__ = "scores"
    __table_args__ = (
        Index("idx_scores_total_ms", "total_ms"),
    )

    session_id: Mapped[str] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True
    )
    total_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    session: Mapped["QuizSession"] = relationship(back_populates="score")
