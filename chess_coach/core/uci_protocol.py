# chess_coach/core/uci_protocol.py
"""
Provides pure, stateless helpers for the engine's line-oriented UCI protocol.

This module builds the command lines sent to the engine and parses the lines it
emits. It knows nothing about processes or timing; the engine channel and
facade use it to stay free of string handling details.
"""

import re
from typing import Final, Optional

import chess

HANDSHAKE_COMMAND: Final[str] = "uci"
HANDSHAKE_COMPLETE: Final[str] = "uciok"
NEW_GAME_COMMAND: Final[str] = "ucinewgame"
STOP_COMMAND: Final[str] = "stop"
BESTMOVE_PREFIX: Final[str] = "bestmove"
NO_MOVE_TOKEN: Final[str] = "(none)"

SKILL_LEVEL_OPTION: Final[str] = "Skill Level"
SKILL_ERROR_OPTION: Final[str] = "Skill Level Maximum Error"

_CP_SCORE_RE = re.compile(r"score cp (-?\d+)")
_MATE_SCORE_RE = re.compile(r"score mate (-?\d+)")


def position_command(fen: str) -> str:
    return f"position fen {fen}"

def search_command(depth: int) -> str:
    return f"go depth {depth}"

def set_option_command(name: str, value: object) -> str:
    return f"setoption name {name} value {value}"

def skill_error_for_level(level: int) -> int:
    """The maximum-error setting that accompanies a weakened skill level."""
    return 100 - (level * 4)


def is_search_complete(line: str) -> bool:
    return line.startswith(BESTMOVE_PREFIX)

def parse_bestmove(line: str) -> Optional[str]:
    """
    Extracts the move token from a `bestmove` line.

    Returns:
        The move in UCI notation, or None if the line carries no move or
        the engine reported `(none)`.
    """
    parts = line.split()
    if len(parts) < 2 or parts[0] != BESTMOVE_PREFIX:
        return None
    move = parts[1]
    return move if move and move != NO_MOVE_TOKEN else None

def parse_info_score(line: str, mate_score: float = 100.0) -> Optional[float]:
    """
    Parses the score token of an `info` line into pawn units.

    Scores are returned exactly as the engine reports them, i.e. from the
    perspective of the side to move. A forced mate collapses to
    `+mate_score` when the side to move is mating and `-mate_score` when it
    is being mated.

    Returns:
        The score in pawns, or None if the line has no score token.
    """
    if "score cp" in line:
        match = _CP_SCORE_RE.search(line)
        if match:
            return int(match.group(1)) / 100
    elif "score mate" in line:
        match = _MATE_SCORE_RE.search(line)
        if match:
            mate = int(match.group(1))
            return mate_score if mate > 0 else -mate_score
    return None

def to_white_perspective(score: float, fen: str) -> float:
    """Re-orients a side-to-move score so that positive always favours White."""
    side_to_move = fen.split()[1] if len(fen.split()) > 1 else "w"
    return score if side_to_move == "w" else -score

def uci_to_san(fen: str, uci: Optional[str]) -> Optional[str]:
    """
    Converts a UCI move into SAN for the given position.

    Falls back to the raw UCI text when the move cannot be read or is not
    legal in the position, so engine suggestions are never silently lost.
    """
    if not uci:
        return None
    try:
        board = chess.Board(fen)
        move = chess.Move.from_uci(uci)
        if not board.is_legal(move):
            return uci
        return board.san(move)
    except ValueError:
        return uci
