"""
Domain exceptions mapped onto HTTP status codes by the exception handlers in main.
"""
from fastapi import status


class QuizError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(QuizError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotAuthenticated(QuizError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


class NotFound(QuizError):
    status_code = status.HTTP_404_NOT_FOUND


class PreconditionFailed(QuizError):
    """The session is not in a state that allows the requested move."""

    status_code = status.HTTP_400_BAD_REQUEST
