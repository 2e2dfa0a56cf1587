# chess_coach/orchestration/analysis_pipeline.py
"""
Drives a full-game, move-by-move evaluation of a finished game.

The pipeline parses the PGN up front (the only hard failure), then walks the
plies strictly in order. For each ply it asks the engine for its preferred
move in the position before the move, plays the actual move, evaluates the
resulting position and classifies the move by how much the mover's advantage
shrank. The evaluation of the previous ply's resulting position serves as the
"before" value, seeded with 0.0 at the start of the game.
"""

import time
from typing import List, Optional

import chess
import structlog

from chess_coach.config.settings import AnalysisSettings
from chess_coach.core import pgn_parser, summary_aggregator, uci_protocol
from chess_coach.core.move_classifier import calculate_eval_drop, classify_eval_drop
from chess_coach.tracing import CorrelationID, bound_correlation, trace_stage
from chess_coach.types import (EngineService, GameAnalysisResult, MoveAnalysis,
                               PlySlice, ProgressObserver)
from chess_coach.utils import metrics

logger = structlog.get_logger(__name__)


class GameAnalysisPipeline:
    """
    Produces a `GameAnalysisResult` for one game at a time.

    Engine calls are awaited one after the other; the pipeline never has more
    than one request outstanding against its engine.
    """

    def __init__(self, engine: EngineService, settings: AnalysisSettings):
        self._engine = engine
        self._settings = settings

    async def analyze_game(
        self, pgn: str, on_progress: Optional[ProgressObserver] = None
    ) -> GameAnalysisResult:
        """
        Analyzes every move of the game in `pgn`.

        Args:
            pgn: The game's PGN text.
            on_progress: Optional callback receiving an integer percentage after
                         each ply, monotonically non-decreasing and ending at 100.

        Returns:
            The ordered per-move analyses plus accuracy and summary counts.

        Raises:
            AnalysisAbortError: If the PGN cannot be parsed. No engine call is
                                made in that case.
        """
        correlation_id = CorrelationID.new("analysis")
        with bound_correlation(correlation_id):
            plies = pgn_parser.parse_game_plies(pgn)
            logger.info("Starting game analysis.", plies=len(plies), depth=self._settings.depth)

            started = time.perf_counter()
            analyses = await self._analyze_plies(plies, on_progress)
            result = summary_aggregator.aggregate_game_analysis(analyses)
            metrics.GAME_ANALYSIS_DURATION_SECONDS.observe(time.perf_counter() - started)

            logger.info(
                "Game analysis complete.",
                plies=len(analyses),
                white_accuracy=result.accuracy.white,
                black_accuracy=result.accuracy.black,
            )
            return result

    @trace_stage
    async def _analyze_plies(
        self, plies: List[PlySlice], on_progress: Optional[ProgressObserver]
    ) -> List[MoveAnalysis]:
        analyses: List[MoveAnalysis] = []
        previous_eval = 0.0
        total = len(plies)

        for i, ply in enumerate(plies):
            analysis = await self._analyze_ply(ply, previous_eval)
            analyses.append(analysis)
            previous_eval = analysis.evaluation

            metrics.PLIES_ANALYZED_TOTAL.inc()
            metrics.MOVES_CLASSIFIED_TOTAL.labels(classification=analysis.classification.value).inc()
            if on_progress is not None:
                on_progress(round(100 * (i + 1) / total))

        return analyses

    async def _analyze_ply(self, ply: PlySlice, previous_eval: float) -> MoveAnalysis:
        depth = self._settings.depth
        best_move_uci = await self._engine.get_best_move(ply.fen_before, depth)

        evaluation_before = None
        if self._settings.evaluate_before_move:
            evaluation_before = await self._engine.evaluate_position(ply.fen_before, depth)

        board = chess.Board(ply.fen_before)
        board.push_uci(ply.uci)
        fen_after = board.fen()

        evaluation = await self._engine.evaluate_position(fen_after, depth)
        eval_drop = calculate_eval_drop(previous_eval, evaluation, ply.player_color)
        classification = classify_eval_drop(eval_drop, self._settings.classification_thresholds)

        logger.debug(
            "Ply analyzed.",
            ply=ply.ply, san=ply.san, evaluation=evaluation,
            eval_drop=round(eval_drop, 2), classification=classification.value,
        )
        return MoveAnalysis(
            move_number=ply.move_number,
            san=ply.san,
            fen=fen_after,
            evaluation=evaluation,
            best_move=uci_protocol.uci_to_san(ply.fen_before, best_move_uci),
            classification=classification,
            evaluation_drop=eval_drop,
            evaluation_before=evaluation_before,
        )
