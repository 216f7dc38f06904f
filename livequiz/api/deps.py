from fastapi import Request

from livequiz.core.clock import Clock
from livequiz.core.config import Settings
from livequiz.services.quiz_engine import QuizEngine


def get_quiz_engine(request: Request) -> QuizEngine:
    return request.app.state.quiz_engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock
