# tests/conftest.py
import asyncio
from typing import Callable, Iterable, List, Optional

import pytest

from chess_coach.config.settings import EngineSettings

Responder = Callable[["FakeEngineProcess", str], Optional[Iterable[str]]]


def stockfish_like(process: "FakeEngineProcess", command: str) -> Optional[Iterable[str]]:
    """Answers the handshake and every search the way a healthy engine would."""
    if command == "uci":
        return ["id name FakeFish", "id author Tests", "uciok"]
    if command.startswith("go"):
        return ["info depth 1 score cp 20 pv e2e4", "bestmove e2e4 ponder e7e5"]
    return None


class FakeStdin:
    def __init__(self, process: "FakeEngineProcess"):
        self._process = process
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.closed:
            raise BrokenPipeError("stdin closed")
        for line in data.decode().splitlines():
            self._process.commands.append(line)
            self._process.handle_command(line)

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True


class FakeEngineProcess:
    """An in-memory stand-in for an engine subprocess with scripted output."""

    def __init__(self, responder: Responder):
        self.stdout = asyncio.StreamReader()
        self.stdin = FakeStdin(self)
        self.returncode: Optional[int] = None
        self.commands: List[str] = []
        self._responder = responder
        self._eof = False

    def handle_command(self, command: str) -> None:
        for line in self._responder(self, command) or ():
            self.emit(line)

    def emit(self, line: str) -> None:
        if not self._eof:
            self.stdout.feed_data(f"{line}\n".encode())

    def crash(self, code: int = 1) -> None:
        self.returncode = code
        self._close_stdout()

    def kill(self) -> None:
        if self.returncode is None:
            self.returncode = -9
        self._close_stdout()

    async def wait(self) -> int:
        return self.returncode

    def _close_stdout(self) -> None:
        if not self._eof and self.stdout is not None:
            self._eof = True
            self.stdout.feed_eof()


class FakeEngineFactory:
    """A process factory that records every fake process it launches."""

    def __init__(self, responder: Responder = stockfish_like):
        self.responder = responder
        self.processes: List[FakeEngineProcess] = []
        self.paths: List[Optional[str]] = []

    async def __call__(self, path: Optional[str]) -> FakeEngineProcess:
        self.paths.append(path)
        process = FakeEngineProcess(lambda proc, command: self.responder(proc, command))
        self.processes.append(process)
        return process

    @property
    def process(self) -> FakeEngineProcess:
        return self.processes[-1]


@pytest.fixture
def engine_factory() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        startup_timeout_s=0.3,
        best_move_timeout_s=0.3,
        evaluation_timeout_s=0.3,
        handshake_delay_s=0.0,
        stop_grace_s=0.2,
        shutdown_timeout_s=0.1,
    )


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Polls the event loop until `predicate` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time.")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until():
    return wait_for_condition
