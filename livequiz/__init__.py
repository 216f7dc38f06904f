"""Live multiplayer trivia quiz service."""

__version__ = "1.0.0"
