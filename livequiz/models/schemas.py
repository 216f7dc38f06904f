"""
Request and response bodies. Every field is exposed in camelCase on the wire.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ========== Session ==========

class StartSessionRequest(CamelModel):
    name: str = ""
    phone: str = ""
    difficulty: str = ""
    avatar_url: str = Field(default="", max_length=512)


class StartSessionResult(CamelModel):
    success: bool
    message: Optional[str] = None
    total_questions: Optional[int] = None
    # not serialized; the route turns it into the session cookie
    session_id: Optional[str] = Field(default=None, exclude=True)


class ResumeSessionResult(CamelModel):
    question_index: int
    finished: bool
    participant_name: str
    participant_phone: str
    total_time_ms: int
    total_questions: int
    success: bool = True


class SubmitEmailRequest(CamelModel):
    email: str = ""


class SubmitEmailResult(CamelModel):
    success: bool
    message: str


# ========== Quiz ==========

class CurrentQuestionResult(CamelModel):
    done: bool
    total_ms: Optional[int] = None
    question_index: Optional[int] = None
    type: Optional[str] = None
    prompt: Optional[str] = None
    choices: Optional[List[str]] = None
    initial_code: Optional[str] = None
    test_code: Optional[str] = None
    session_started_at_utc: datetime


class SubmitAnswerRequest(CamelModel):
    answer_text: str = Field(default="", max_length=2048)


class AnswerResult(CamelModel):
    correct: bool
    penalty_ms_added: Optional[int] = None
    quiz_completed: Optional[bool] = None
    total_ms: Optional[int] = None
    total_penalty_ms: Optional[int] = None
    message: Optional[str] = None


class SkipResult(CamelModel):
    success: bool
    penalty_ms: int = 0
    quiz_completed: bool = False
    total_ms: Optional[int] = None
    message: Optional[str] = None


# ========== Leaderboard ==========

class LeaderboardEntry(CamelModel):
    name: str
    total_ms: int
    avatar_url: str = ""


class MyScore(CamelModel):
    name: str
    total_ms: int
    position: int
    total_participants: int
    completed_at: datetime
    difficulty: str


class MostRecentParticipant(CamelModel):
    name: str
    total_ms: int
    avatar_url: str = ""
    completed_at: datetime
    position: int


class OngoingParticipant(CamelModel):
    session_id: str
    name: str
    avatar_url: str = ""
    difficulty: str
    started_at_ms: int
    last_activity_ms: int
    current_question_index: int
    total_questions: int
    total_penalty_ms: int
    completed: bool = False


class ParticipantCompletion(CamelModel):
    session_id: str
    name: str
    avatar_url: str = ""
    difficulty: str
    total_ms: int
    ranking: int
    is_top_three: bool
    is_on_leaderboard: bool


class LeaderboardUpdate(CamelModel):
    difficulty: str
    entries: List[LeaderboardEntry]


# ========== Admin ==========

class AdminLoginRequest(CamelModel):
    password: str = ""


class AdminAuthResult(CamelModel):
    success: bool
    token: Optional[str] = None
    message: Optional[str] = None


class AdminLeaderboardEntry(CamelModel):
    participant_id: str
    name: str
    phone: str
    email: Optional[str] = None
    total_ms: int
    avatar_url: str = ""
    difficulty: str
    completed_at_utc: datetime


class AdminContact(CamelModel):
    participant_id: str
    name: str
    email: str
    phone: str
    created_at_utc: datetime
