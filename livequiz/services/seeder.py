"""
Startup seed data: the two quizzes and their ordered questions.

Seeding only runs against an empty question table, so restarting the service
never duplicates or reorders anything.
"""
import logging
from typing import Dict, List, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from livequiz.core.database import transaction
from livequiz.models.orm import Question, QuestionType, Quiz, QuizQuestion

logger = logging.getLogger(__name__)


def choice_question(prompt: str, answer: str, choices: List[str]) -> Dict:
    return {"type": QuestionType.MULTIPLE_CHOICE, "prompt": prompt, "correct_answer": answer, "payload": choices}


def code_fix_question(prompt: str, answer: str, initial_code: str, test_code: str) -> Dict:
    return {
        "type": QuestionType.CODE_FIX,
        "prompt": prompt,
        "correct_answer": answer,
        "payload": {"initialCode": initial_code, "testCode": test_code},
    }


NOOB_QUESTIONS = [
    choice_question(
        "What does HTML stand for?",
        "HyperText Markup Language",
        ["HyperText Markup Language", "High Tech Modern Language", "Home Tool Markup Language", "Hyperlink Text Mode Layout"],
    ),
    choice_question(
        "Which of these is a version control system?",
        "Git",
        ["Gulp", "Git", "Grunt", "GIMP"],
    ),
    choice_question(
        "What is a password manager for?",
        "Storing unique, strong passwords for you",
        ["Sharing one password across all sites", "Storing unique, strong passwords for you", "Speeding up your browser", "Blocking pop-up ads"],
    ),
    choice_question(
        "Which company created the Python programming language?",
        "None, it was created by Guido van Rossum",
        ["Google", "Microsoft", "None, it was created by Guido van Rossum", "Sun Microsystems"],
    ),
    choice_question(
        "What does a 404 status code mean?",
        "The page was not found",
        ["The server crashed", "The page was not found", "You are not logged in", "The request succeeded"],
    ),
    choice_question(
        "Which key combination usually copies selected text?",
        "Ctrl + C",
        ["Ctrl + V", "Ctrl + X", "Ctrl + C", "Ctrl + Z"],
    ),
]

NERD_QUESTIONS = [
    choice_question(
        "What is the time complexity of binary search on a sorted array?",
        "O(log n)",
        ["O(n)", "O(log n)", "O(n log n)", "O(1)"],
    ),
    choice_question(
        "Which HTTP method is idempotent but not safe?",
        "PUT",
        ["GET", "POST", "PUT", "PATCH"],
    ),
    code_fix_question(
        "Fix the function so the assertion passes.",
        "def double(x): return x * 2",
        "def double(x): return x + 2",
        "assert double(5) == 10",
    ),
    choice_question(
        "What does ACID stand for in databases?",
        "Atomicity, Consistency, Isolation, Durability",
        [
            "Atomicity, Consistency, Isolation, Durability",
            "Availability, Concurrency, Integrity, Distribution",
            "Access, Control, Identity, Data",
            "Asynchronous, Cached, Indexed, Distributed",
        ],
    ),
    choice_question(
        "Which data structure does a breadth-first search use?",
        "Queue",
        ["Stack", "Queue", "Heap", "Trie"],
    ),
    choice_question(
        "In Git, what does 'rebase' do?",
        "Replays commits on top of another base commit",
        ["Deletes the remote branch", "Replays commits on top of another base commit", "Reverts the last commit", "Creates a new repository"],
    ),
    choice_question(
        "What port does HTTPS use by default?",
        "443",
        ["80", "8080", "443", "22"],
    ),
    choice_question(
        "Which of these is NOT a valid JSON value type?",
        "Date",
        ["String", "Boolean", "Null", "Date"],
    ),
]

QUIZZES = (
    ("Noob Quiz", "noob", NOOB_QUESTIONS),
    ("Nerd Quiz", "nerd", NERD_QUESTIONS),
)


def add_quiz(db: Session, name: str, difficulty: str, questions: Sequence[Dict]) -> Quiz:
    """Insert a quiz and its questions in the given order (sequence 1..n)."""
    quiz = Quiz(name=name, difficulty=difficulty)
    db.add(quiz)
    for sequence, fields in enumerate(questions, start=1):
        question = Question(**fields)
        db.add(question)
        quiz.quiz_questions.append(QuizQuestion(question=question, sequence=sequence))
    return quiz


def seed_quizzes(db: Session, quizzes=QUIZZES) -> bool:
    """Seed when no questions exist yet. Returns True if anything was inserted."""
    if db.scalar(select(func.count()).select_from(Question)):
        logger.info("Questions already present, skipping seed")
        return False

    with transaction(db):
        for name, difficulty, questions in quizzes:
            add_quiz(db, name, difficulty, questions)
            logger.info("Seeded %s with %d questions", difficulty, len(questions))
    return True
