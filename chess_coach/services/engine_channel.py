# chess_coach/services/engine_channel.py
"""
Owns the lifecycle of a single UCI engine subprocess.

The engine speaks a plain-text, line-delimited protocol with no request
identifiers, so this module does no request correlation of its own. It
spawns the process, performs the `uci`/`uciok` handshake, writes command
lines, and hands every output line to the oldest registered one-shot
listener. Deciding whether a line "answers" a request is the listener's job;
a listener that wants more lines re-registers itself.

The channel is an explicit state machine
(`UNINITIALIZED -> READY -> CRASHED | STOPPED`). A crash discards the process
and every pending listener without invoking them; nothing restarts
automatically. The next caller that needs the engine observes the non-ready
state and calls `start()` again.
"""

import asyncio
from collections import deque
from typing import Deque, Optional

import structlog

from chess_coach.config.settings import EngineSettings
from chess_coach.core import uci_protocol
from chess_coach.exceptions import EngineCrashError, EngineSpawnError, EngineStartupTimeout
from chess_coach.types import ChannelState, EngineProcess, EngineStdout, MessageListener, ProcessFactory
from chess_coach.utils import metrics
from chess_coach.utils.system_utils import find_engine_executable

logger = structlog.get_logger(__name__)


async def spawn_engine_process(path: Optional[str]) -> EngineProcess:
    """
    Default process factory: locates the engine and launches it with piped
    stdin/stdout.

    Raises:
        FileNotFoundError: If no engine executable can be found.
    """
    executable = find_engine_executable(path)
    return await asyncio.create_subprocess_exec(
        str(executable),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )


class EngineChannel:
    """
    A single-owner, line-oriented channel to one engine process.

    Only one component (the `EngineFacade`) should drive a channel. Concurrent
    logical requests are not supported here because responses are matched
    purely by arrival order.
    """

    def __init__(self, settings: EngineSettings, process_factory: Optional[ProcessFactory] = None):
        """
        Initializes the channel without starting any process.

        Args:
            settings: Engine configuration (executable path and timeouts).
            process_factory: An async callable that launches the engine for a
                             given executable path. Defaults to an asyncio subprocess.
        """
        self._settings = settings
        self._process_factory = process_factory or spawn_engine_process
        self._process: Optional[EngineProcess] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._listeners: Deque[MessageListener] = deque()
        self._state = ChannelState.UNINITIALIZED
        self._start_lock = asyncio.Lock()
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ChannelState.READY and self._process is not None

    @property
    def pending_listeners(self) -> int:
        return len(self._listeners)

    async def start(self) -> None:
        """
        Spawns the engine (if needed) and completes the UCI handshake.

        Idempotent: returns immediately if the channel is already ready.

        Raises:
            EngineSpawnError: If the process cannot be created.
            EngineStartupTimeout: If `uciok` is not seen within the startup timeout.
            EngineCrashError: If the process exits before the handshake completes.
        """
        async with self._start_lock:
            if self.is_ready:
                return
            if self._process is not None:
                # A half-started process from a previous attempt is never reused.
                await self._teardown(ChannelState.UNINITIALIZED)

            loop = asyncio.get_running_loop()
            # The startup timeout covers spawning and the handshake delay too.
            deadline = loop.time() + self._settings.startup_timeout_s
            await self._spawn()

            handshake: asyncio.Future = loop.create_future()

            def wait_for_uciok(line: str) -> None:
                if line == uci_protocol.HANDSHAKE_COMPLETE:
                    if not handshake.done():
                        handshake.set_result(None)
                else:
                    self.await_next_message(wait_for_uciok)

            reader = self._reader_task
            self.await_next_message(wait_for_uciok)
            await asyncio.sleep(self._settings.handshake_delay_s)
            self.send(uci_protocol.HANDSHAKE_COMMAND)

            # The reader finishing first means the process died mid-handshake.
            done, _ = await asyncio.wait(
                {handshake, reader},
                timeout=max(0.0, deadline - loop.time()),
                return_when=asyncio.FIRST_COMPLETED,
            )

            if not done:
                metrics.ENGINE_STARTUPS_TOTAL.labels(outcome="timeout").inc()
                await self._teardown(ChannelState.UNINITIALIZED)
                error = EngineStartupTimeout(
                    f"Engine did not complete the UCI handshake within {self._settings.startup_timeout_s}s.",
                    channel=self,
                )
                self.last_error = error
                logger.error(
                    "Engine startup timed out.", timeout_s=self._settings.startup_timeout_s, user_alert=True
                )
                raise error

            if handshake not in done or self._process is None:
                metrics.ENGINE_STARTUPS_TOTAL.labels(outcome="crashed").inc()
                raise EngineCrashError("Engine exited during startup.", channel=self)

            self._state = ChannelState.READY
            self.last_error = None
            metrics.ENGINE_STARTUPS_TOTAL.labels(outcome="ready").inc()
            logger.info("Engine ready.")
            self.send(uci_protocol.NEW_GAME_COMMAND)

    async def _spawn(self) -> None:
        executable = self._settings.path
        try:
            process = await self._process_factory(executable)
        except (OSError, ValueError) as e:
            metrics.ENGINE_STARTUPS_TOTAL.labels(outcome="spawn_failed").inc()
            error = EngineSpawnError(f"Failed to launch engine: {e}", channel=self)
            self.last_error = error
            logger.error("Engine process could not be spawned.", path=executable, error=str(e), user_alert=True)
            raise error from e

        if process.stdin is None or process.stdout is None:
            metrics.ENGINE_STARTUPS_TOTAL.labels(outcome="spawn_failed").inc()
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            error = EngineSpawnError("Engine process was created without piped stdin/stdout.", channel=self)
            self.last_error = error
            logger.error("Engine process has no pipes.", path=executable, user_alert=True)
            raise error

        self._process = process
        logger.info("Engine process spawned.", path=executable or "auto")
        self._listeners.clear()
        self._reader_task = asyncio.create_task(self._read_loop(process, process.stdout))

    def send(self, command: str) -> None:
        """
        Writes one command line to the engine's stdin.

        A missing process is a no-op with a warning. A failed write is treated
        as a crash; writes are never retried.
        """
        if not command:
            return
        process = self._process
        if process is None or process.stdin is None:
            logger.warning("No engine process available to send command.", command=command)
            return
        if process.stdin.is_closing():
            self._handle_crash(f"stdin closed while sending {command!r}")
            return
        try:
            process.stdin.write(f"{command}\n".encode())
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as e:
            self._handle_crash(f"write failed: {e}")
            return
        metrics.ENGINE_COMMANDS_SENT_TOTAL.inc()
        logger.debug("Engine command sent.", command=command)

    def await_next_message(self, listener: MessageListener) -> None:
        """
        Registers a one-shot listener for the next unclaimed output line.

        Listeners are served strictly in registration order, one line each.
        """
        self._listeners.append(listener)

    def discard_listener(self, listener: MessageListener) -> bool:
        """Removes a still-queued listener so it cannot claim a later line."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def _dispatch(self, line: str) -> None:
        logger.debug("Engine output received.", line=line)
        if not self._listeners:
            return
        listener = self._listeners.popleft()
        try:
            listener(line)
        except Exception:
            logger.error("Engine message listener raised.", line=line, exc_info=True)

    async def _read_loop(self, process: EngineProcess, stdout: EngineStdout) -> None:
        """Reads stdout line by line until EOF, dispatching each non-empty line."""
        try:
            while True:
                raw = await stdout.readline()
                if not raw:
                    break
                line = raw.decode(errors="replace").strip()
                if line:
                    self._dispatch(line)
        except (OSError, ValueError) as e:
            if process is self._process:
                self._handle_crash(f"read failed: {e}")
            return

        if process is self._process:
            self._handle_crash(f"process exited with code {process.returncode}")

    def _handle_crash(self, reason: str) -> None:
        """Drops the process and every pending listener; does not restart."""
        process = self._process
        self._process = None
        self._state = ChannelState.CRASHED
        self._listeners.clear()
        self.last_error = EngineCrashError(f"Engine crashed: {reason}", channel=self)
        metrics.ENGINE_CRASHES_TOTAL.inc()
        logger.error("Engine process crashed.", reason=reason)

        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

    async def stop(self) -> None:
        """Tears the process down and clears all state. Safe to call repeatedly."""
        await self._teardown(ChannelState.STOPPED)
        logger.info("Engine channel stopped.")

    async def _teardown(self, final_state: ChannelState) -> None:
        process = self._process
        reader = self._reader_task
        self._process = None
        self._reader_task = None
        self._listeners.clear()
        self._state = final_state

        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self._settings.shutdown_timeout_s)
            except asyncio.TimeoutError:
                logger.warning("Engine process did not exit after kill.")
