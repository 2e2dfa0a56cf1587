# chess_coach/core/move_classifier.py
"""
Contains the evaluation-drop classification rule.

This module is pure: it turns two consecutive White-positive evaluations into
the mover's "evaluation drop" and maps that drop onto a quality tier. It has
no dependencies on the engine or the pipeline, which keeps every boundary of
the rule directly testable.
"""
from typing import Optional

from chess_coach.config.settings import ClassificationThresholdsModel
from chess_coach.types import MoveClassification, PlayerColor

_DEFAULT_THRESHOLDS = ClassificationThresholdsModel()


def calculate_eval_drop(previous_eval: float, eval_after: float, mover: PlayerColor) -> float:
    """
    Calculates how much the mover's own advantage shrank with their move.

    Both evaluations are White-positive. A positive result means the mover's
    position got worse; a negative one means it improved.
    """
    if mover is PlayerColor.WHITE:
        return previous_eval - eval_after
    return eval_after - previous_eval


def classify_eval_drop(
    eval_drop: float, thresholds: Optional[ClassificationThresholdsModel] = None
) -> MoveClassification:
    """
    Maps an evaluation drop (in pawns) onto a quality tier.

    Drops of zero or less are tested against the improvement tiers first;
    positive drops are tested separately against the loss tiers. A drop of
    exactly zero is therefore 'good'.

    Args:
        eval_drop: The drop returned by `calculate_eval_drop`.
        thresholds: Tier boundaries; the defaults are -0.5 / -0.2 / 0.5 / 1.5 / 3.0.

    Returns:
        The classification. `MoveClassification.BOOK` is never produced here.
    """
    t = thresholds or _DEFAULT_THRESHOLDS

    if eval_drop <= 0:
        if eval_drop <= t.brilliant:
            return MoveClassification.BRILLIANT
        if eval_drop <= t.great:
            return MoveClassification.GREAT
        return MoveClassification.GOOD

    if eval_drop >= t.blunder:
        return MoveClassification.BLUNDER
    if eval_drop >= t.mistake:
        return MoveClassification.MISTAKE
    if eval_drop >= t.inaccuracy:
        return MoveClassification.INACCURACY
    return MoveClassification.GOOD
