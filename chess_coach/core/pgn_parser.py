# chess_coach/core/pgn_parser.py
"""
Parses PGN text into the application's internal per-ply data contracts.

This module acts as an Anti-Corruption Layer between `python-chess` and the
analysis pipeline: the pipeline only ever sees `PlySlice` objects. Parsing is
strict. A game that cannot be read, or whose mainline contains an illegal
move, aborts the analysis before a single engine call is made.
"""
import io
from typing import List

import chess
import chess.pgn
import structlog

from chess_coach.exceptions import AnalysisAbortError
from chess_coach.types import PlayerColor, PlySlice

logger = structlog.get_logger(__name__)


def _get_move_number(ply: int) -> int:
    """Calculates the 1-indexed move number from a 0-indexed ply."""
    return ply // 2 + 1

def read_pgn(pgn_text: str) -> chess.pgn.Game:
    """
    Reads exactly one game from PGN text.

    Raises:
        AnalysisAbortError: If the text holds no game, or python-chess
                            reported errors while reading it.
    """
    if not pgn_text or not pgn_text.strip():
        raise AnalysisAbortError("No PGN text supplied.")

    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None:
        raise AnalysisAbortError("PGN text does not contain a game.")
    if game.errors:
        # python-chess collects illegal/ambiguous SAN tokens instead of raising.
        logger.warning("Rejecting PGN with parse errors.", errors=[str(e) for e in game.errors])
        raise AnalysisAbortError(f"Invalid PGN: {game.errors[0]}")
    return game

def parse_game_plies(pgn_text: str) -> List[PlySlice]:
    """
    Parses a PGN string into an ordered list of `PlySlice` objects.

    Games that start from a custom position (a FEN header) are handled by
    replaying the mainline from `game.board()`.

    Args:
        pgn_text: The full PGN of one game.

    Returns:
        One `PlySlice` per half-move, in game order. A game without moves
        yields an empty list.

    Raises:
        AnalysisAbortError: If the PGN is unreadable or contains an illegal move.
    """
    game = read_pgn(pgn_text)
    board = game.board()
    slices: List[PlySlice] = []

    try:
        for move in game.mainline_moves():
            ply = len(slices)
            slices.append(
                PlySlice(
                    ply=ply,
                    move_number=_get_move_number(ply),
                    player_color=PlayerColor.WHITE if board.turn == chess.WHITE else PlayerColor.BLACK,
                    fen_before=board.fen(),
                    uci=move.uci(),
                    san=board.san(move),
                )
            )
            # board.push() is the true validator of a move's legality in sequence.
            board.push(move)
    except (AssertionError, chess.IllegalMoveError, ValueError) as e:
        logger.warning("Aborting analysis due to PGN integrity error.", ply=len(slices), error=str(e))
        raise AnalysisAbortError(f"Corrupt or illegal move at ply {len(slices)}.") from e

    return slices
