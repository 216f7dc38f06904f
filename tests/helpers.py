from datetime import datetime, timedelta

from sqlalchemy import select

from livequiz.models.orm import QuizQuestion, QuizSession
from livequiz.services.seeder import choice_question, code_fix_question

ADMIN_PASSWORD = "open-sesame"

NOOB = [
    choice_question("What is 2 + 2?", "4", ["3", "4", "5", "22"]),
    code_fix_question(
        "Fix the greeting.",
        'greeting = "hello world"',
        'greeting = "hello"',
        'assert greeting == "hello world"',
    ),
    choice_question("Which planet is known as the red planet?", "Mars", ["Venus", "Mars", "Jupiter", "Saturn"]),
]

NERD = [
    choice_question("What does CPU stand for?", "Central Processing Unit", [
        "Central Processing Unit", "Computer Power Unit", "Core Program Utility", "Central Peripheral Unit",
    ]),
    choice_question("Which sort is O(n log n) in the worst case?", "Merge sort", [
        "Quick sort", "Merge sort", "Bubble sort", "Insertion sort",
    ]),
]

CODE_FIX_ANSWER = 'greeting = "hello world"'


class FakeClock:
    def __init__(self, start: datetime = datetime(2025, 3, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def current_answer(db, session_id: str) -> str:
    session = db.get(QuizSession, session_id)
    entry = db.scalar(
        select(QuizQuestion).where(
            QuizQuestion.quiz_id == session.quiz_id,
            QuizQuestion.sequence == session.current_question_index + 1,
        )
    )
    return entry.question.correct_answer


ANSWERS = {
    "noob": ["4", CODE_FIX_ANSWER, "Mars"],
    "nerd": ["Central Processing Unit", "Merge sort"],
}


def start(client, name="Ada", phone="+4712345678", difficulty="noob", avatar_url=""):
    r = client.post(
        "/api/session/start",
        json={"name": name, "phone": phone, "difficulty": difficulty, "avatarUrl": avatar_url},
    )
    assert r.status_code == 200, r.text
    assert r.json()["success"] is True, r.json()
    return r


def finish(client, clock, difficulty="noob", seconds=1):
    """Answer every remaining question correctly through the HTTP API."""
    result = None
    while True:
        current = client.get("/api/quiz/current").json()
        if current["done"]:
            return result
        answer = ANSWERS[difficulty][current["questionIndex"]]
        clock.advance(seconds=seconds)
        result = client.post("/api/quiz/answer", json={"answerText": answer}).json()
        assert result["correct"] is True, result
