# chess_coach/types.py
"""
A central module for shared data structures and service interfaces (Protocols).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (Any, Awaitable, Callable, Dict, List, Optional, Protocol,
                    runtime_checkable, Tuple, TypeAlias)

FEN: TypeAlias = str
UciMove: TypeAlias = str
MessageListener: TypeAlias = Callable[[str], None]
ProgressObserver: TypeAlias = Callable[[int], None]
AlertCallback: TypeAlias = Callable[[str], None]


class MoveClassification(str, Enum):
    BRILLIANT = "brilliant"; GREAT = "great"; GOOD = "good"
    INACCURACY = "inaccuracy"; MISTAKE = "mistake"; BLUNDER = "blunder"
    # Part of the taxonomy, never produced by the eval-drop rule.
    BOOK = "book"


# Tiers that count towards a side's accuracy percentage.
ACCURATE_CLASSIFICATIONS = frozenset(
    {MoveClassification.BRILLIANT, MoveClassification.GREAT, MoveClassification.GOOD}
)


class ChannelState(str, Enum):
    """Lifecycle of the engine process owned by an `EngineChannel`."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CRASHED = "crashed"
    STOPPED = "stopped"


class PlayerColor(str, Enum):
    WHITE = "white"; BLACK = "black"


class GameOutcome(str, Enum):
    """A finished game's result, always from the human player's perspective."""
    WIN = "win"; LOSS = "loss"; DRAW = "draw"


# --- Engine & analysis data contracts ---

@dataclass(frozen=True, slots=True)
class PlySlice:
    """One half-move of a parsed game, with the position it was played from."""
    ply: int; move_number: int; player_color: PlayerColor
    fen_before: FEN; uci: UciMove; san: str

@dataclass(frozen=True, slots=True)
class MoveAnalysis:
    move_number: int; san: str; fen: FEN; evaluation: float
    best_move: Optional[str]; classification: MoveClassification
    evaluation_drop: float; evaluation_before: Optional[float] = None

@dataclass(frozen=True, slots=True)
class SideAccuracy:
    white: int; black: int

@dataclass(frozen=True)
class GameAnalysisResult:
    moves: List[MoveAnalysis]; accuracy: SideAccuracy
    summary: Dict[MoveClassification, int]; average_evaluation: float


# --- Interactive game data contracts ---

@dataclass(frozen=True, slots=True)
class MoveRecord:
    from_square: str; to_square: str; piece: str; san: str; color: PlayerColor
    captured: Optional[str] = None; promotion: Optional[str] = None

@dataclass
class CapturedPieces:
    """Captured piece letters keyed by the side that lost them."""
    white: List[str] = field(default_factory=list)
    black: List[str] = field(default_factory=list)

    def record(self, losing_side: PlayerColor, piece: str) -> None:
        getattr(self, losing_side.value).append(piece)

@dataclass(frozen=True)
class GameState:
    fen: FEN; pgn: str; moves: Tuple[MoveRecord, ...]
    is_check: bool; is_checkmate: bool; is_draw: bool; turn: PlayerColor
    captured_pieces: Dict[str, List[str]]


# --- Persistence data contracts ---

@dataclass(frozen=True, slots=True)
class NewGame:
    pgn: str; fen: FEN; result: str; user_color: str
    opponent: Optional[str] = None; opponent_rating: Optional[int] = None

@dataclass(frozen=True, slots=True)
class GameRecord:
    id: int; user_id: str; pgn: str; fen: Optional[FEN]; result: Optional[str]
    user_color: Optional[str]; opponent: str; opponent_rating: Optional[int]
    played_at: datetime; analyzed: bool


# --- Coaching data contracts ---

@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str; content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

@dataclass(frozen=True, slots=True)
class PositionAnalysisRequest:
    fen: FEN; last_move: Optional[str] = None
    game_context: Optional[str] = None; player_color: Optional[str] = None


# --- PROTOCOLS: Abstract Interfaces for Services ---
# These define the "contracts" that concrete service implementations must adhere to.
# They enable dependency inversion and allow for easy mocking in tests.

class EngineStdin(Protocol):
    def write(self, data: bytes) -> None: ...
    def is_closing(self) -> bool: ...
    def close(self) -> None: ...

class EngineStdout(Protocol):
    async def readline(self) -> bytes: ...

class EngineProcess(Protocol):
    """The subset of `asyncio.subprocess.Process` the engine channel relies on."""
    stdin: Optional[EngineStdin]
    stdout: Optional[EngineStdout]
    returncode: Optional[int]
    def kill(self) -> None: ...
    async def wait(self) -> int: ...

ProcessFactory: TypeAlias = Callable[[Optional[str]], Awaitable[EngineProcess]]

@runtime_checkable
class EngineService(Protocol):
    """Defines the two request/response operations offered on top of an engine."""
    async def get_best_move(self, fen: FEN, depth: int) -> Optional[UciMove]: ...
    async def evaluate_position(self, fen: FEN, depth: int) -> float: ...

@runtime_checkable
class GameRepository(Protocol):
    """Defines the abstract interface for the game storage layer."""
    async def save_game(self, user_id: str, game: NewGame) -> GameRecord: ...
    async def list_games(self, user_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[GameRecord], int]: ...
    async def get_game(self, game_id: int, user_id: str) -> GameRecord: ...
    async def delete_game(self, game_id: int, user_id: str) -> bool: ...

@runtime_checkable
class TextCompletionService(Protocol):
    """Defines the opaque text-completion capability used for coaching."""
    async def complete(
        self, system_prompt: str, history: List[ChatMessage], user_message: str, **options: Any
    ) -> str: ...
