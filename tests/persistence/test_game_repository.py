# tests/persistence/test_game_repository.py
import pytest
import pytest_asyncio

from chess_coach.config.settings import PersistenceSettings
from chess_coach.exceptions import GameNotFoundError, PersistenceError
from chess_coach.persistence.game_repository import SqliteGameRepository
from chess_coach.types import NewGame

FOOLS_MATE = "1. f3 e5 2. g4 Qh4# 0-1"


def new_game(result="win", pgn=FOOLS_MATE, opponent="Stockfish"):
    return NewGame(pgn=pgn, fen="fen", result=result, user_color="black", opponent=opponent)


@pytest_asyncio.fixture
async def repository(tmp_path):
    settings = PersistenceSettings(db_filepath=str(tmp_path / "nested" / "games.db"))
    async with SqliteGameRepository(settings) as repo:
        yield repo


@pytest.mark.asyncio
async def test_save_and_get_round_trip(repository):
    # Act
    saved = await repository.save_game("alice", new_game())
    loaded = await repository.get_game(saved.id, "alice")

    # Assert
    assert loaded == saved
    assert loaded.pgn == FOOLS_MATE
    assert loaded.result == "win"
    assert loaded.opponent == "Stockfish"
    assert loaded.analyzed is False


@pytest.mark.asyncio
async def test_missing_opponent_defaults_to_bot(repository):
    saved = await repository.save_game("alice", new_game(opponent=None))

    assert saved.opponent == "Bot"
    assert (await repository.get_game(saved.id, "alice")).opponent == "Bot"


@pytest.mark.asyncio
async def test_game_without_pgn_is_rejected(repository):
    with pytest.raises(PersistenceError):
        await repository.save_game("alice", new_game(pgn=""))


@pytest.mark.asyncio
async def test_list_games_is_newest_first_with_total(repository):
    # Arrange
    ids = [(await repository.save_game("alice", new_game(result=r))).id for r in ("win", "loss", "draw")]
    await repository.save_game("bob", new_game())

    # Act
    page, total = await repository.list_games("alice", limit=2, offset=0)
    rest, _ = await repository.list_games("alice", limit=2, offset=2)

    # Assert
    assert total == 3
    assert [g.id for g in page] == [ids[2], ids[1]]
    assert [g.id for g in rest] == [ids[0]]


@pytest.mark.asyncio
async def test_games_are_scoped_to_their_owner(repository):
    saved = await repository.save_game("alice", new_game())

    with pytest.raises(GameNotFoundError):
        await repository.get_game(saved.id, "mallory")
    assert await repository.delete_game(saved.id, "mallory") is False
    assert (await repository.list_games("mallory"))[1] == 0


@pytest.mark.asyncio
async def test_delete_game(repository):
    saved = await repository.save_game("alice", new_game())

    assert await repository.delete_game(saved.id, "alice") is True
    assert await repository.delete_game(saved.id, "alice") is False
    with pytest.raises(GameNotFoundError):
        await repository.get_game(saved.id, "alice")


@pytest.mark.asyncio
async def test_mark_analyzed(repository):
    saved = await repository.save_game("alice", new_game())

    assert await repository.mark_analyzed(saved.id, "alice") is True
    assert (await repository.get_game(saved.id, "alice")).analyzed is True
    assert await repository.mark_analyzed(999, "alice") is False


@pytest.mark.asyncio
async def test_repository_requires_open_connection(tmp_path):
    repo = SqliteGameRepository(PersistenceSettings(db_filepath=str(tmp_path / "games.db")))

    with pytest.raises(PersistenceError):
        await repo.save_game("alice", new_game())
