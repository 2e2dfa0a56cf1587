# chess_coach/core/summary_aggregator.py
"""
Provides pure functions to create the game-level summary of an analysis.

Takes the ordered per-ply `MoveAnalysis` list produced by the analysis
pipeline and derives per-side accuracy, per-tier counts and the average
evaluation.
"""

import math
import statistics
from collections import Counter
from typing import Dict, List, Sequence

from chess_coach.types import (ACCURATE_CLASSIFICATIONS, GameAnalysisResult,
                               MoveAnalysis, MoveClassification, SideAccuracy)


def calculate_accuracy(analyses: Sequence[MoveAnalysis]) -> int:
    """
    Calculates the share of a side's moves classified brilliant, great or good.

    Returns:
        The percentage rounded to the nearest integer, or 100 for a side that
        made no moves.
    """
    if not analyses:
        return 100
    accurate = sum(1 for a in analyses if a.classification in ACCURATE_CLASSIFICATIONS)
    return round(100 * accurate / len(analyses))

def count_classifications(analyses: Sequence[MoveAnalysis]) -> Dict[MoveClassification, int]:
    """Counts every tier across the whole game, including tiers that never occurred."""
    counts = Counter(a.classification for a in analyses)
    return {classification: counts.get(classification, 0) for classification in MoveClassification}

def average_evaluation(analyses: Sequence[MoveAnalysis]) -> float:
    """
    The mean post-move evaluation of the game.

    Returns NaN for an empty game; callers must guard against that.
    """
    if not analyses:
        return math.nan
    return statistics.fmean(a.evaluation for a in analyses)

def aggregate_game_analysis(analyses: List[MoveAnalysis]) -> GameAnalysisResult:
    """
    Builds the final `GameAnalysisResult` from the ordered per-ply analyses.

    White's moves are the even ply indices and Black's the odd ones.
    """
    white_moves = analyses[0::2]
    black_moves = analyses[1::2]

    return GameAnalysisResult(
        moves=list(analyses),
        accuracy=SideAccuracy(
            white=calculate_accuracy(white_moves),
            black=calculate_accuracy(black_moves),
        ),
        summary=count_classifications(analyses),
        average_evaluation=average_evaluation(analyses),
    )
