# tests/services/test_engine_facade.py
import asyncio

import chess
import pytest
import pytest_asyncio

from chess_coach.services.engine_channel import EngineChannel
from chess_coach.services.engine_facade import EngineFacade

START_FEN = chess.STARTING_FEN
BLACK_TO_MOVE_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def scripted(search_output, stop_output=()):
    """Builds a responder that answers the handshake and replies to every `go` with `search_output`."""
    def responder(process, command):
        if command == "uci":
            return ["uciok"]
        if command.startswith("go"):
            return list(search_output)
        if command == "stop":
            return list(stop_output)
        return None
    return responder


@pytest_asyncio.fixture
async def facade(engine_settings, engine_factory):
    channel = EngineChannel(engine_settings, engine_factory)
    facade = EngineFacade(channel, engine_settings)
    yield facade
    await facade.shutdown()


@pytest.mark.asyncio
async def test_get_best_move_starts_engine_and_parses_move(facade, engine_factory):
    # Act
    move = await facade.get_best_move(START_FEN, 12)

    # Assert
    assert move == "e2e4"
    assert engine_factory.process.commands[-3:] == [
        "ucinewgame",
        f"position fen {START_FEN}",
        "go depth 12",
    ]


@pytest.mark.asyncio
async def test_get_best_move_returns_none_for_no_move(facade, engine_factory):
    engine_factory.responder = scripted(["info depth 0 score mate 0", "bestmove (none)"])

    assert await facade.get_best_move(START_FEN) is None


@pytest.mark.asyncio
async def test_get_best_move_returns_none_when_engine_cannot_start(engine_settings):
    async def missing_engine(path):
        raise FileNotFoundError("no engine")

    facade = EngineFacade(EngineChannel(engine_settings, missing_engine), engine_settings)

    assert await facade.get_best_move(START_FEN) is None


@pytest.mark.asyncio
async def test_get_best_move_times_out_and_sends_stop_once(facade, engine_factory, engine_settings):
    # Arrange
    engine_factory.responder = scripted(["info depth 30 score cp 15"])
    loop = asyncio.get_running_loop()

    # Act
    started = loop.time()
    move = await facade.get_best_move(START_FEN, 30)
    elapsed = loop.time() - started

    # Assert
    assert move is None
    assert elapsed >= engine_settings.best_move_timeout_s
    assert elapsed < engine_settings.best_move_timeout_s + 0.5
    assert engine_factory.process.commands.count("stop") == 1
    assert facade.is_ready


@pytest.mark.asyncio
async def test_trailing_bestmove_after_timeout_is_not_misattributed(facade, engine_factory):
    # Arrange: the first search hangs; its late answer only arrives after `stop`.
    engine_factory.responder = scripted(["info depth 30 score cp 15"], stop_output=["bestmove a2a3"])
    assert await facade.get_best_move(START_FEN) is None

    # Act
    engine_factory.responder = scripted(["info depth 10 score cp 30", "bestmove g1f3"])
    move = await facade.get_best_move(START_FEN)

    # Assert
    assert move == "g1f3"


@pytest.mark.asyncio
async def test_requests_are_serialized(facade, engine_factory):
    await facade.ensure_started()

    first, second = await asyncio.gather(
        facade.get_best_move(START_FEN, 5),
        facade.get_best_move(START_FEN, 6),
    )

    assert first == second == "e2e4"
    commands = engine_factory.process.commands
    first_go = commands.index("go depth 5")
    second_reset = commands.index("ucinewgame", first_go)
    assert commands.index("go depth 6") > second_reset


@pytest.mark.asyncio
async def test_evaluate_position_keeps_latest_score(facade, engine_factory):
    engine_factory.responder = scripted([
        "info depth 1 score cp 10",
        "info depth 2 score cp 50 nodes 1234",
        "info depth 2 currmove e2e4 currmovenumber 1",
        "bestmove e2e4",
    ])
    await facade.ensure_started()

    score = await facade.evaluate_position(START_FEN, 15)

    assert score == pytest.approx(0.5)
    assert engine_factory.process.commands[-2:] == [f"position fen {START_FEN}", "go depth 15"]


@pytest.mark.asyncio
async def test_evaluate_position_is_white_positive(facade, engine_factory):
    engine_factory.responder = scripted(["info depth 12 score cp 35", "bestmove e7e5"])
    await facade.ensure_started()

    score = await facade.evaluate_position(BLACK_TO_MOVE_FEN)

    assert score == pytest.approx(-0.35)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fen, mate_token, expected",
    [
        (START_FEN, "score mate 3", 100.0),
        (START_FEN, "score mate -2", -100.0),
        (BLACK_TO_MOVE_FEN, "score mate 3", -100.0),
        (BLACK_TO_MOVE_FEN, "score mate -1", 100.0),
    ],
)
async def test_forced_mate_collapses_to_sentinel(facade, engine_factory, fen, mate_token, expected):
    engine_factory.responder = scripted([f"info depth 20 {mate_token} pv e2e4", "bestmove e2e4"])
    await facade.ensure_started()

    assert await facade.evaluate_position(fen) == expected


@pytest.mark.asyncio
async def test_evaluate_position_timeout_returns_best_score_so_far(facade, engine_factory):
    engine_factory.responder = scripted(["info depth 25 score cp 42"])
    await facade.ensure_started()

    score = await facade.evaluate_position(START_FEN, 40)

    assert score == pytest.approx(0.42)
    assert engine_factory.process.commands.count("stop") == 1


@pytest.mark.asyncio
async def test_evaluate_position_without_engine_is_neutral(facade, engine_factory):
    score = await facade.evaluate_position(START_FEN)

    assert score == 0.0
    assert engine_factory.processes == []


@pytest.mark.asyncio
async def test_high_difficulty_sends_only_skill_level(facade, engine_factory):
    await facade.ensure_started()

    level = facade.set_difficulty(18)

    assert level == 18
    assert engine_factory.process.commands[-1] == "setoption name Skill Level value 18"
    assert not any("Maximum Error" in c for c in engine_factory.process.commands)


@pytest.mark.asyncio
async def test_low_difficulty_also_widens_error_margin(facade, engine_factory):
    await facade.ensure_started()

    facade.set_difficulty(5)

    assert engine_factory.process.commands[-2:] == [
        "setoption name Skill Level value 5",
        "setoption name Skill Level Maximum Error value 80",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("requested, expected", [(0, 1), (-3, 1), (21, 20), (42, 20), (15, 15)])
async def test_difficulty_is_clamped(facade, requested, expected):
    assert facade.set_difficulty(requested) == expected
    assert facade.difficulty == expected


@pytest.mark.asyncio
async def test_difficulty_before_start_is_only_remembered(facade, engine_factory):
    facade.set_difficulty(3)

    assert facade.difficulty == 3
    assert engine_factory.processes == []


@pytest.mark.asyncio
async def test_engine_restarts_after_crash(facade, engine_factory, wait_until):
    await facade.ensure_started()
    engine_factory.process.crash()
    await wait_until(lambda: not facade.is_ready)

    move = await facade.get_best_move(START_FEN)

    assert move == "e2e4"
    assert len(engine_factory.processes) == 2


@pytest.mark.asyncio
async def test_unacknowledged_stop_does_not_leak_into_next_request(facade, engine_factory, engine_settings):
    engine_factory.responder = scripted(["info depth 30 score cp 15"])
    assert await facade.get_best_move(START_FEN) is None
    await asyncio.sleep(engine_settings.stop_grace_s + 0.05)

    engine_factory.responder = scripted(["info depth 10 score cp 30", "bestmove d2d4"])
    move = await facade.get_best_move(START_FEN)

    assert move == "d2d4"
    assert facade.channel.pending_listeners == 0


@pytest.mark.asyncio
async def test_cancelled_search_stops_engine_and_frees_channel(facade, engine_factory):
    # Arrange: the engine never finishes the first search.
    engine_factory.responder = scripted(["info depth 30 score cp 15"])
    await facade.ensure_started()
    search = asyncio.create_task(facade.get_best_move(START_FEN, 30))
    await asyncio.sleep(0.05)

    # Act
    search.cancel()
    with pytest.raises(asyncio.CancelledError):
        await search
    stops_sent = engine_factory.process.commands.count("stop")
    engine_factory.responder = scripted(["info depth 10 score cp 50", "bestmove e2e4"])
    score = await facade.evaluate_position(START_FEN)

    # Assert
    assert stops_sent == 1
    assert score == pytest.approx(0.5)
    assert facade.channel.pending_listeners == 0


@pytest.mark.asyncio
async def test_cancelled_search_drains_trailing_bestmove(facade, engine_factory):
    engine_factory.responder = scripted(["info depth 30 score cp 15"], stop_output=["bestmove a2a3"])
    await facade.ensure_started()
    search = asyncio.create_task(facade.get_best_move(START_FEN, 30))
    await asyncio.sleep(0.05)
    search.cancel()
    with pytest.raises(asyncio.CancelledError):
        await search

    engine_factory.responder = scripted(["info depth 10 score cp 30", "bestmove g1f3"])

    assert await facade.get_best_move(START_FEN) == "g1f3"
