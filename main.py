# main.py
"""
The command-line entry point for analyzing a single game.

Usage:
    python main.py game.pgn [--depth N] [--stockfish-path PATH] [--json]
"""
import argparse
import asyncio
import json
import math
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from chess_coach.config.settings import Settings
from chess_coach.containers import get_container
from chess_coach.core import pgn_parser
from chess_coach.exceptions import AnalysisAbortError, EngineError
from chess_coach.orchestration.analysis_pipeline import GameAnalysisPipeline
from chess_coach.services.engine_facade import EngineFacade
from chess_coach.types import GameAnalysisResult, ProcessFactory
from chess_coach.utils.alerts import AlertProcessor
from chess_coach.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Classify every move of a chess game with a UCI engine.")
    parser.add_argument("pgn", type=Path, help="Path to a PGN file containing one game.")
    parser.add_argument("--depth", type=int, default=None, help="Search depth per query (default from settings).")
    parser.add_argument("--stockfish-path", default=None, help="Path to the engine executable.")
    parser.add_argument("--json", action="store_true", help="Print the full analysis as JSON.")
    parser.add_argument("--log-level", default=None, help="Minimum log level (default from settings).")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write JSON logs to this file.")
    parser.add_argument("--trace-engine", action="store_true", help="Log every raw line exchanged with the engine.")
    return parser


def result_to_dict(result: GameAnalysisResult) -> Dict[str, Any]:
    average = None if math.isnan(result.average_evaluation) else round(result.average_evaluation, 2)
    return {
        "accuracy": {"white": result.accuracy.white, "black": result.accuracy.black},
        "summary": {classification.value: count for classification, count in result.summary.items()},
        "average_evaluation": average,
        "moves": [
            {
                "move_number": m.move_number,
                "san": m.san,
                "fen": m.fen,
                "evaluation": m.evaluation,
                "best_move": m.best_move,
                "classification": m.classification.value,
                "evaluation_drop": round(m.evaluation_drop, 2),
            }
            for m in result.moves
        ],
    }


def format_report(result: GameAnalysisResult) -> str:
    lines: List[str] = []
    for i, move in enumerate(result.moves):
        prefix = f"{move.move_number}." if i % 2 == 0 else f"{move.move_number}..."
        best = f" (best: {move.best_move})" if move.best_move and move.best_move != move.san else ""
        lines.append(
            f"{prefix:<6}{move.san:<8}{move.evaluation:+7.2f}  {move.classification.value:<11}{best}"
        )
    lines.append("")
    lines.append(f"Accuracy  White: {result.accuracy.white}%  Black: {result.accuracy.black}%")
    counts = ", ".join(f"{c.value}: {n}" for c, n in result.summary.items() if n)
    lines.append(f"Summary   {counts or 'no moves'}")
    if not math.isnan(result.average_evaluation):
        lines.append(f"Average evaluation: {result.average_evaluation:+.2f}")
    return "\n".join(lines)


async def run_analysis(
    settings: Settings, pgn_text: str, process_factory: Optional[ProcessFactory] = None
) -> GameAnalysisResult:
    """
    Analyzes one game. The PGN is validated before the engine is started, so
    an unreadable game never spawns a process.
    """
    pgn_parser.parse_game_plies(pgn_text)
    container = get_container(settings, process_factory)
    pipeline = container.resolve(GameAnalysisPipeline)
    facade = container.resolve(EngineFacade)

    def report_progress(percent: int) -> None:
        logger.info("Analysis progress.", percent=percent)

    try:
        await facade.start()
        return await pipeline.analyze_game(pgn_text, on_progress=report_progress)
    finally:
        await facade.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings()
    if args.depth is not None:
        settings.analysis.depth = args.depth
    if args.stockfish_path:
        settings.engine.path = args.stockfish_path

    alerts = AlertProcessor()
    alerts.subscribe(lambda message: print(message, file=sys.stderr))
    setup_logging(
        log_level=args.log_level or settings.default_log_level,
        log_file=args.log_file,
        engine_io_level="DEBUG" if args.trace_engine else None,
        extra_processors=[alerts],
    )

    try:
        pgn_text = args.pgn.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error("Could not read PGN file.", path=str(args.pgn), error=str(e))
        return 2

    try:
        result = asyncio.run(run_analysis(settings, pgn_text))
    except AnalysisAbortError as e:
        logger.error("Analysis aborted.", error=str(e))
        return 2
    except EngineError as e:
        logger.error("Engine unavailable.", error=str(e), user_alert=True)
        return 3

    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
    else:
        print(format_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
