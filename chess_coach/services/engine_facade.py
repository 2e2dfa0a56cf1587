# chess_coach/services/engine_facade.py
"""
Provides a concrete implementation of the `EngineService` protocol on top of
an `EngineChannel`.

The facade turns the channel's raw line stream into two single-shot
operations, "best move for a position" and "evaluation of a position". Each
call is fully serialized behind an `asyncio.Lock`: the UCI protocol carries no
request identifiers, so two overlapping searches would have their output lines
misattributed. Engine failures never escape this module as exceptions; they
degrade to `None` (best move) or a neutral / partial score (evaluation) so
that gameplay and analysis stay responsive.
"""

import asyncio
from typing import Callable, List, Optional, Tuple

import structlog

from chess_coach.config.settings import EngineSettings
from chess_coach.core import uci_protocol
from chess_coach.exceptions import EngineError
from chess_coach.services.engine_channel import EngineChannel
from chess_coach.types import FEN, EngineService, UciMove
from chess_coach.utils import metrics

logger = structlog.get_logger(__name__)


class EngineFacade(EngineService):
    """
    A serialized request/response interface to a UCI engine.

    The facade is the only component allowed to drive its channel. It never
    runs two searches at once against that channel.
    """

    def __init__(self, channel: EngineChannel, settings: EngineSettings, mate_score: float = 100.0):
        """
        Initializes the EngineFacade.

        Args:
            channel: The engine channel this facade exclusively owns.
            settings: Engine configuration (timeouts and difficulty bounds).
            mate_score: Pawn-unit magnitude reported for a forced mate.
        """
        self._channel = channel
        self._settings = settings
        self._mate_score = mate_score
        self._difficulty = settings.default_difficulty
        self._request_lock = asyncio.Lock()
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def channel(self) -> EngineChannel:
        return self._channel

    @property
    def difficulty(self) -> int:
        return self._difficulty

    @property
    def is_ready(self) -> bool:
        return self._channel.is_ready

    async def start(self) -> None:
        """
        Starts the engine, propagating startup failures.

        Used by callers that must report an initialization failure; the
        per-request operations use `ensure_started` instead.
        """
        await self._channel.start()

    async def ensure_started(self) -> bool:
        """Attempts a single (re)start if the channel is not ready. Never raises."""
        if self._channel.is_ready:
            return True
        logger.warning("Engine not ready, attempting restart.", state=self._channel.state.value)
        try:
            await self._channel.start()
        except EngineError as e:
            logger.error("Failed to restart engine.", error=str(e))
            return False
        return True

    async def get_best_move(self, fen: FEN, depth: int = 10) -> Optional[UciMove]:
        """
        Searches the position to the given depth and returns the engine's move.

        Returns:
            The best move in UCI notation, or None if the engine could not be
            started, reported no legal move, or did not answer in time.
        """
        if not await self.ensure_started():
            return None

        completed, line = await self._search(
            commands=[
                uci_protocol.NEW_GAME_COMMAND,
                uci_protocol.position_command(fen),
                uci_protocol.search_command(depth),
            ],
            timeout=self._settings.best_move_timeout_s,
            operation="best_move",
        )
        if not completed or line is None:
            return None
        return uci_protocol.parse_bestmove(line)

    async def evaluate_position(self, fen: FEN, depth: int = 12) -> float:
        """
        Evaluates the position and returns a White-positive score in pawns.

        The most recent `score cp` / `score mate` seen before `bestmove` wins.
        On timeout the best score observed so far is used; an unready engine
        yields 0.0. This method never raises.
        """
        if not self._channel.is_ready:
            logger.warning("Engine not ready, skipping evaluation.", fen=fen)
            return 0.0

        latest_score = 0.0

        def track_score(line: str) -> None:
            nonlocal latest_score
            score = uci_protocol.parse_info_score(line, self._mate_score)
            if score is not None:
                latest_score = score

        await self._search(
            commands=[
                uci_protocol.position_command(fen),
                uci_protocol.search_command(depth),
            ],
            timeout=self._settings.evaluation_timeout_s,
            operation="evaluate",
            on_line=track_score,
        )
        return uci_protocol.to_white_perspective(latest_score, fen)

    def set_difficulty(self, level: int) -> int:
        """
        Clamps and remembers the skill level, applying it if the engine is ready.

        Levels below the weakening threshold also raise the engine's maximum
        error, giving weaker and less deterministic play.

        Returns:
            The clamped level.
        """
        self._difficulty = max(self._settings.min_difficulty, min(self._settings.max_difficulty, level))
        if self._channel.is_ready:
            self._channel.send(
                uci_protocol.set_option_command(uci_protocol.SKILL_LEVEL_OPTION, self._difficulty)
            )
            if self._difficulty < self._settings.weakening_threshold:
                self._channel.send(
                    uci_protocol.set_option_command(
                        uci_protocol.SKILL_ERROR_OPTION,
                        uci_protocol.skill_error_for_level(self._difficulty),
                    )
                )
        logger.info("Difficulty set.", level=self._difficulty, applied=self._channel.is_ready)
        return self._difficulty

    async def shutdown(self) -> None:
        """Stops the engine process. The facade can be restarted afterwards."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        await self._channel.stop()

    async def _search(
        self,
        commands: List[str],
        timeout: float,
        operation: str,
        on_line: Optional[Callable[[str], None]] = None,
    ) -> Tuple[bool, Optional[str]]:
        """
        Runs one search while holding the request lock.

        Every line is offered to `on_line`; any line that is not `bestmove`
        re-queues the listener. On timeout or cancellation a `stop` is sent and
        the lock stays held in the background until the trailing `bestmove`
        arrives (or the grace period passes), so the next request cannot
        receive stale lines.

        Returns:
            A `(completed, bestmove_line)` tuple.
        """
        await self._request_lock.acquire()
        release_lock = True
        try:
            if not self._channel.is_ready:
                return False, None

            loop = asyncio.get_running_loop()
            terminal: asyncio.Future = loop.create_future()

            def listener(line: str) -> None:
                if on_line is not None:
                    on_line(line)
                if uci_protocol.is_search_complete(line):
                    if not terminal.done():
                        terminal.set_result(line)
                else:
                    self._channel.await_next_message(listener)

            self._channel.await_next_message(listener)
            for command in commands:
                self._channel.send(command)
            if not self._channel.is_ready:
                logger.warning("Engine crashed while starting a search.", operation=operation)
                return False, None

            started = loop.time()
            try:
                line = await asyncio.wait_for(asyncio.shield(terminal), timeout=timeout)
                return True, line
            except asyncio.TimeoutError:
                metrics.ENGINE_REQUEST_TIMEOUTS_TOTAL.labels(operation=operation).inc()
                logger.warning("Engine search timed out, forcing stop.", operation=operation, timeout_s=timeout)
                self._abandon_search(terminal, listener)
                release_lock = False
                return False, None
            except asyncio.CancelledError:
                logger.info("Engine search cancelled, forcing stop.", operation=operation)
                self._abandon_search(terminal, listener)
                release_lock = False
                raise
            finally:
                metrics.ENGINE_REQUEST_DURATION_SECONDS.labels(operation=operation).observe(loop.time() - started)
        finally:
            if release_lock:
                self._request_lock.release()

    def _abandon_search(self, terminal: asyncio.Future, listener: Callable[[str], None]) -> None:
        """Stops the engine and keeps the lock until its trailing `bestmove` is consumed."""
        self._channel.send(uci_protocol.STOP_COMMAND)
        self._drain_task = asyncio.create_task(self._release_after_drain(terminal, listener))

    async def _release_after_drain(self, terminal: asyncio.Future, listener: Callable[[str], None]) -> None:
        try:
            await asyncio.wait_for(terminal, timeout=self._settings.stop_grace_s)
        except asyncio.TimeoutError:
            self._channel.discard_listener(listener)
            logger.warning("Engine did not acknowledge stop in time.", grace_s=self._settings.stop_grace_s)
        finally:
            self._request_lock.release()
