# chess_coach/exceptions.py
"""
Defines custom exceptions for the Chess Coach application.

Centralizing exceptions in this module prevents circular dependencies that can
arise when different components need to catch errors defined in others. A clear
exception hierarchy, with a common `ChessCoachError` base, allows for flexible
and specific error handling throughout the application.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from chess_coach.services.engine_channel import EngineChannel


class ChessCoachError(Exception):
    """Base class for all application-specific, catchable errors."""
    pass


class EngineError(ChessCoachError):
    """
    Base class for errors related to the chess engine subprocess.

    Attributes:
        channel: An optional reference to the channel that owns the failed
                 process, allowing for targeted cleanup or restart.
    """
    def __init__(self, message: str, channel: Optional["EngineChannel"] = None):
        super().__init__(message)
        self.channel = channel


class EngineSpawnError(EngineError):
    """
    Raised when the engine process cannot be created at all.

    This typically occurs if the executable path is invalid or file
    permissions are incorrect.
    """
    pass


class EngineStartupTimeout(EngineError):
    """
    Raised when the engine process starts but never reports `uciok`
    within the configured startup timeout.
    """
    pass


class EngineCrashError(EngineError):
    """
    Describes an unexpected termination of a previously healthy engine process.

    The channel records this as its last failure; it is not raised to callers
    of the facade, which degrade to neutral results instead.
    """
    pass


class IllegalMoveError(ChessCoachError):
    """Raised when the rules engine rejects a move for the current position."""
    pass


class AnalysisAbortError(ChessCoachError):
    """
    Raised when a game's move list cannot be parsed.

    This is fatal to a single analysis run only and never touches the engine
    channel's state.
    """
    pass


class PersistenceError(ChessCoachError):
    """Base class for errors related to the game storage layer."""
    pass


class GameNotFoundError(PersistenceError):
    """Raised when a stored game does not exist or belongs to another user."""
    pass


class CoachServiceError(ChessCoachError):
    """Raised when the coaching text-completion backend fails to answer."""
    pass


class SessionStateError(ChessCoachError):
    """Raised when an interactive session is used before it is initialized."""
    pass
