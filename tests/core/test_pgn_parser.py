# tests/core/test_pgn_parser.py
import chess
import pytest

from chess_coach.core.pgn_parser import parse_game_plies
from chess_coach.exceptions import AnalysisAbortError
from chess_coach.types import PlayerColor

ITALIAN_PGN = """[Event "Casual Game"]
[White "Alice"]
[Black "Bob"]
[Result "*"]

1. e4 e5 2. Nf3 Nc6 3. Bc4 *
"""


def test_parse_game_plies_returns_one_slice_per_half_move():
    # Act
    plies = parse_game_plies(ITALIAN_PGN)

    # Assert
    assert [p.san for p in plies] == ["e4", "e5", "Nf3", "Nc6", "Bc4"]
    assert [p.uci for p in plies] == ["e2e4", "e7e5", "g1f3", "b8c6", "f1c4"]
    assert [p.move_number for p in plies] == [1, 1, 2, 2, 3]
    assert [p.player_color for p in plies] == [
        PlayerColor.WHITE, PlayerColor.BLACK, PlayerColor.WHITE, PlayerColor.BLACK, PlayerColor.WHITE,
    ]
    assert plies[0].fen_before == chess.STARTING_FEN
    assert plies[1].fen_before.startswith("rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b")


def test_parse_game_plies_honours_custom_start_position():
    pgn = """[SetUp "1"]
[FEN "4k3/8/8/8/8/8/8/4K2R w K - 0 1"]

1. O-O Kd7 *
"""

    plies = parse_game_plies(pgn)

    assert plies[0].fen_before == "4k3/8/8/8/8/8/8/4K2R w K - 0 1"
    assert plies[0].san == "O-O"
    assert plies[0].uci == "e1g1"
    assert plies[1].player_color is PlayerColor.BLACK


def test_game_without_moves_yields_no_plies():
    assert parse_game_plies('[Event "Empty"]\n\n*\n') == []


@pytest.mark.parametrize("pgn", ["", "   \n", "1. e4 e5 2. Qxh7 *", "1. e4 e4 *"])
def test_unparsable_games_abort(pgn):
    with pytest.raises(AnalysisAbortError):
        parse_game_plies(pgn)
