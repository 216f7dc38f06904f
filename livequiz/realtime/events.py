"""Session lifecycle events published by the quiz engine after each commit."""
from dataclasses import dataclass
from typing import Callable

LEADERBOARD_UPDATE = "LeaderboardUpdate"
PARTICIPANT_STARTED = "ParticipantStarted"
PARTICIPANT_PROGRESS = "ParticipantProgress"
PARTICIPANT_COMPLETED = "ParticipantCompleted"


@dataclass(frozen=True)
class ParticipantStarted:
    session_id: str


@dataclass(frozen=True)
class ParticipantProgressed:
    session_id: str


@dataclass(frozen=True)
class SessionCompleted:
    session_id: str
    total_ms: int


QuizEvent = ParticipantStarted | ParticipantProgressed | SessionCompleted

Publisher = Callable[[QuizEvent], None]
