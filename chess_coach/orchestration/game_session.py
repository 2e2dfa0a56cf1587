# chess_coach/orchestration/game_session.py
"""
Drives one live human-vs-engine game.

The session owns the board, turn ownership and the captured-piece tally. A
human move is applied synchronously; the engine's reply runs as a scheduled
`asyncio` task after a short delay, with a "thinking" flag raised for its
whole duration. When a game reaches a terminal position the result (from the
human's point of view) is handed to the game repository. Storage failures are
surfaced as user alerts and never roll back the in-memory game.
"""

import asyncio
from typing import List, Optional, Set

import chess
import chess.pgn
import structlog

from chess_coach.config.settings import SessionSettings
from chess_coach.exceptions import IllegalMoveError, PersistenceError, SessionStateError
from chess_coach.services.engine_facade import EngineFacade
from chess_coach.types import (AlertCallback, CapturedPieces, GameOutcome,
                               GameRepository, GameState, MoveRecord, NewGame,
                               PlayerColor)

logger = structlog.get_logger(__name__)


def _color_of(side: chess.Color) -> PlayerColor:
    return PlayerColor.WHITE if side == chess.WHITE else PlayerColor.BLACK

def _side_of(color: PlayerColor) -> chess.Color:
    return chess.WHITE if color is PlayerColor.WHITE else chess.BLACK


class InteractiveGameSession:
    """
    A single human-vs-engine game bound to one `EngineFacade`.

    Only one engine reply is ever in flight. Human moves submitted while the
    engine is thinking are rejected outright.
    """

    def __init__(
        self,
        engine: EngineFacade,
        settings: SessionSettings,
        repository: Optional[GameRepository] = None,
        user_id: str = "local",
        on_alert: Optional[AlertCallback] = None,
    ):
        """
        Initializes an idle session; call `initialize()` before playing.

        Args:
            engine: The facade used for the engine's replies.
            settings: Session timing and labelling.
            repository: Where finished games are stored. Games are not saved if omitted.
            user_id: The owner recorded with saved games.
            on_alert: Optional callback receiving user-visible failure messages.
        """
        self._engine = engine
        self._settings = settings
        self._repository = repository
        self._user_id = user_id
        self._on_alert = on_alert

        self._board: Optional[chess.Board] = None
        self._human_color = PlayerColor.WHITE
        self._difficulty = engine.difficulty
        self._moves: List[MoveRecord] = []
        self._captured = CapturedPieces()
        self._thinking = False
        self._engine_task: Optional[asyncio.Task] = None
        self._persist_tasks: Set[asyncio.Task] = set()

    # --- Read-only views ---

    @property
    def is_initialized(self) -> bool:
        return self._board is not None

    @property
    def is_thinking(self) -> bool:
        return self._thinking

    @property
    def human_color(self) -> PlayerColor:
        return self._human_color

    @property
    def difficulty(self) -> int:
        return self._difficulty

    @property
    def is_human_turn(self) -> bool:
        board = self._require_board()
        return board.turn == _side_of(self._human_color)

    @property
    def is_game_over(self) -> bool:
        return self._require_board().is_game_over()

    @property
    def state(self) -> GameState:
        """An immutable snapshot of the current game."""
        board = self._require_board()
        return GameState(
            fen=board.fen(),
            pgn=self._export_pgn(),
            moves=tuple(self._moves),
            is_check=board.is_check(),
            is_checkmate=board.is_checkmate(),
            is_draw=self._is_draw(board),
            turn=_color_of(board.turn),
            captured_pieces={"white": list(self._captured.white), "black": list(self._captured.black)},
        )

    # --- Lifecycle ---

    async def initialize(self, human_color: PlayerColor, difficulty: int) -> None:
        """
        Starts a fresh game from the initial position.

        The engine is started (or ready-checked) first and the difficulty is
        applied. If the human plays Black, the engine's first move is scheduled.

        Raises:
            EngineError: If the engine cannot be started.
        """
        await self._cancel_engine_move()
        await self._engine.start()
        self._difficulty = self._engine.set_difficulty(difficulty)
        self._human_color = human_color
        self._new_board()
        logger.info("Game session initialized.", human_color=human_color.value, difficulty=self._difficulty)

        if human_color is PlayerColor.BLACK:
            self._schedule_engine_move()

    def reset(self) -> None:
        """
        Discards the current game and returns to the starting position.

        Colour and difficulty are kept. The engine process is untouched. A
        pending engine reply is cancelled.
        """
        self._require_board()
        if self._engine_task is not None and not self._engine_task.done():
            self._engine_task.cancel()
        self._engine_task = None
        self._new_board()
        logger.info("Game session reset.")
        if self._human_color is PlayerColor.BLACK:
            self._schedule_engine_move()

    async def resign(self) -> None:
        """Records a loss for the human (if any move was played) and resets."""
        self._require_board()
        await self._cancel_engine_move()
        if self._moves:
            await self._persist_result(GameOutcome.LOSS)
        logger.info("Human resigned.", moves_played=len(self._moves))
        self.reset()

    async def wait_until_idle(self) -> None:
        """Waits for a pending engine reply and any in-flight saves to finish."""
        while self._engine_task is not None and not self._engine_task.done():
            await asyncio.gather(self._engine_task, return_exceptions=True)
        if self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks), return_exceptions=True)

    # --- Moves ---

    def submit_human_move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> bool:
        """
        Applies a human move if it is legal and it is the human's turn.

        Args:
            from_square: The origin square, e.g. "e2".
            to_square: The target square, e.g. "e4".
            promotion: The promotion piece letter ("q", "r", "b", "n"), if any.

        Returns:
            True if the move was played; False (with no state change) otherwise.
        """
        board = self._require_board()
        if self._thinking:
            logger.info("Move rejected, engine is thinking.", move=f"{from_square}{to_square}")
            return False
        if board.is_game_over() or not self.is_human_turn:
            logger.info("Move rejected, not the human's turn.", move=f"{from_square}{to_square}")
            return False

        try:
            move = self._build_move(from_square, to_square, promotion)
            self._apply_move(move)
        except IllegalMoveError as e:
            logger.info("Illegal move rejected.", error=str(e))
            return False

        self._after_move()
        return True

    def _build_move(self, from_square: str, to_square: str, promotion: Optional[str]) -> chess.Move:
        try:
            promotion_piece = chess.Piece.from_symbol(promotion).piece_type if promotion else None
            return chess.Move(chess.parse_square(from_square), chess.parse_square(to_square), promotion=promotion_piece)
        except ValueError as e:
            raise IllegalMoveError(f"Unreadable move {from_square}{to_square}{promotion or ''}.") from e

    def _apply_move(self, move: chess.Move) -> MoveRecord:
        """
        Plays a move on the board and records it.

        Raises:
            IllegalMoveError: If the move is not legal in the current position.
        """
        board = self._require_board()
        if not board.is_legal(move):
            raise IllegalMoveError(f"Illegal move {move.uci()} in position {board.fen()}.")

        mover = _color_of(board.turn)
        piece = board.piece_at(move.from_square)
        if board.is_en_passant(move):
            captured = "p"
        else:
            target = board.piece_at(move.to_square)
            captured = target.symbol().lower() if target else None

        record = MoveRecord(
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            piece=piece.symbol().lower() if piece else "",
            san=board.san(move),
            color=mover,
            captured=captured,
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
        )
        board.push(move)
        self._moves.append(record)
        if captured:
            losing_side = PlayerColor.BLACK if mover is PlayerColor.WHITE else PlayerColor.WHITE
            self._captured.record(losing_side, captured)

        logger.debug("Move applied.", san=record.san, color=mover.value)
        return record

    def _after_move(self) -> None:
        board = self._require_board()
        if board.is_game_over():
            self._schedule_persist(self._outcome_for_human(board))
        elif not self.is_human_turn:
            self._schedule_engine_move()

    def _schedule_engine_move(self) -> None:
        self._thinking = True
        self._engine_task = asyncio.create_task(self._engine_move_step(self._board))

    async def _engine_move_step(self, board: chess.Board) -> None:
        """
        Asks the engine for its reply and plays it.

        A missing or illegal suggestion is logged and the position is left
        unchanged. The search depth is the session's difficulty level.
        """
        try:
            await asyncio.sleep(self._settings.engine_move_delay_s)
            if board.is_game_over():
                return
            uci = await self._engine.get_best_move(board.fen(), self._difficulty)
            if board is not self._board:
                # The game was reset while the engine was searching.
                return
            if uci is None:
                logger.warning("Engine returned no move, position unchanged.", fen=board.fen())
                return
            try:
                self._apply_move(chess.Move.from_uci(uci))
            except (IllegalMoveError, ValueError) as e:
                logger.warning("Engine move rejected, position unchanged.", move=uci, error=str(e))
                return
        finally:
            if board is self._board:
                self._thinking = False

        if board.is_game_over():
            await self._persist_result(self._outcome_for_human(board))

    async def _cancel_engine_move(self) -> None:
        task = self._engine_task
        self._engine_task = None
        self._thinking = False
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # --- Results & persistence ---

    def _outcome_for_human(self, board: chess.Board) -> GameOutcome:
        """Checkmate means the side to move has lost; every other ending is a draw."""
        if board.is_checkmate():
            mated = _color_of(board.turn)
            return GameOutcome.LOSS if mated is self._human_color else GameOutcome.WIN
        return GameOutcome.DRAW

    def _schedule_persist(self, outcome: GameOutcome) -> None:
        task = asyncio.create_task(self._persist_result(outcome))
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist_result(self, outcome: GameOutcome) -> None:
        if self._repository is None:
            logger.debug("No repository configured, game not saved.", result=outcome.value)
            return
        board = self._require_board()
        game = NewGame(
            pgn=self._export_pgn(outcome),
            fen=board.fen(),
            result=outcome.value,
            user_color=self._human_color.value,
            opponent=self._settings.opponent_label,
        )
        try:
            record = await self._repository.save_game(self._user_id, game)
        except PersistenceError as e:
            logger.error("Failed to save finished game.", error=str(e), result=outcome.value, user_alert=True)
            if self._on_alert is not None:
                self._on_alert(f"Could not save game: {e}")
            return
        logger.info("Finished game saved.", game_id=record.id, result=outcome.value)

    def _export_pgn(self, outcome: Optional[GameOutcome] = None) -> str:
        board = self._require_board()
        game = chess.pgn.Game.from_board(board)
        human, engine = "Player", self._settings.opponent_label
        if self._human_color is PlayerColor.WHITE:
            game.headers["White"], game.headers["Black"] = human, engine
        else:
            game.headers["White"], game.headers["Black"] = engine, human
        if outcome is GameOutcome.LOSS and not board.is_game_over():
            # Resignation: the human's opponent is awarded the game.
            game.headers["Result"] = "0-1" if self._human_color is PlayerColor.WHITE else "1-0"
        exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
        return game.accept(exporter)

    # --- Helpers ---

    def _new_board(self) -> None:
        self._board = chess.Board()
        self._moves = []
        self._captured = CapturedPieces()
        self._thinking = False

    def _require_board(self) -> chess.Board:
        if self._board is None:
            raise SessionStateError("The game session has not been initialized.")
        return self._board

    @staticmethod
    def _is_draw(board: chess.Board) -> bool:
        return (
            board.is_stalemate()
            or board.is_insufficient_material()
            or board.can_claim_draw()
            or board.is_seventyfive_moves()
            or board.is_fivefold_repetition()
        )
