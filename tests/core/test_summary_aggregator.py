# tests/core/test_summary_aggregator.py
import math

import pytest

from chess_coach.core.summary_aggregator import (aggregate_game_analysis, average_evaluation,
                                                 calculate_accuracy, count_classifications)
from chess_coach.types import MoveAnalysis, MoveClassification


def make_analysis(classification, evaluation=0.0, ply=0):
    return MoveAnalysis(
        move_number=ply // 2 + 1, san="e4", fen="fen", evaluation=evaluation,
        best_move=None, classification=classification, evaluation_drop=0.0,
    )


def test_accuracy_of_side_without_moves_is_full():
    assert calculate_accuracy([]) == 100


def test_accuracy_counts_brilliant_great_and_good():
    analyses = [
        make_analysis(MoveClassification.BRILLIANT),
        make_analysis(MoveClassification.GREAT),
        make_analysis(MoveClassification.GOOD),
        make_analysis(MoveClassification.INACCURACY),
        make_analysis(MoveClassification.MISTAKE),
        make_analysis(MoveClassification.BLUNDER),
    ]

    assert calculate_accuracy(analyses) == 50


def test_accuracy_rounds_to_nearest_integer():
    analyses = [
        make_analysis(MoveClassification.GOOD),
        make_analysis(MoveClassification.GOOD),
        make_analysis(MoveClassification.BLUNDER),
    ]

    assert calculate_accuracy(analyses) == 67


def test_counts_include_every_tier():
    counts = count_classifications([make_analysis(MoveClassification.GOOD), make_analysis(MoveClassification.GOOD)])

    assert counts[MoveClassification.GOOD] == 2
    assert counts[MoveClassification.BOOK] == 0
    assert set(counts) == set(MoveClassification)


def test_average_evaluation_of_empty_game_is_nan():
    assert math.isnan(average_evaluation([]))


def test_aggregate_splits_sides_by_ply_parity():
    # Arrange: White plays well, Black blunders twice.
    analyses = [
        make_analysis(MoveClassification.GOOD, 0.2, ply=0),
        make_analysis(MoveClassification.BLUNDER, 3.5, ply=1),
        make_analysis(MoveClassification.GREAT, 3.8, ply=2),
        make_analysis(MoveClassification.BLUNDER, 7.0, ply=3),
    ]

    # Act
    result = aggregate_game_analysis(analyses)

    # Assert
    assert result.accuracy.white == 100
    assert result.accuracy.black == 0
    assert result.summary[MoveClassification.BLUNDER] == 2
    assert result.average_evaluation == pytest.approx((0.2 + 3.5 + 3.8 + 7.0) / 4)
    assert result.moves == analyses
