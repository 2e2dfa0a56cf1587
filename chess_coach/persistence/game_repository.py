# chess_coach/persistence/game_repository.py
"""
Provides a concrete implementation of the `GameRepository` protocol using SQLite.

Finished games (from interactive sessions or imports) are stored per user in
a single `games` table. The repository is an async context manager that owns
its `aiosqlite` connection. Transient "database is locked" errors are retried
with backoff; anything else surfaces as a `PersistenceError`.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Type

import aiosqlite
import structlog

from chess_coach.config.settings import PersistenceSettings
from chess_coach.exceptions import GameNotFoundError, PersistenceError
from chess_coach.types import GameRecord, GameRepository, NewGame
from chess_coach.utils import metrics
from chess_coach.utils.retry import is_transient_sqlite_error, retry_with_backoff

logger = structlog.get_logger(__name__)

# Narrowed to lock contention by `is_transient_sqlite_error`.
RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    aiosqlite.OperationalError,
)

DEFAULT_OPPONENT = "Bot"
GAME_SOURCE = "platform"

CREATE_GAMES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS games (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    pgn TEXT NOT NULL,
    fen TEXT,
    source TEXT NOT NULL DEFAULT 'platform',
    result TEXT,
    user_color TEXT,
    opponent TEXT NOT NULL DEFAULT 'Bot',
    opponent_rating INTEGER,
    played_at TEXT NOT NULL,
    analyzed INTEGER NOT NULL DEFAULT 0
)
"""

CREATE_USER_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_games_user_played ON games (user_id, played_at)"

_SELECT_COLUMNS = "id, user_id, pgn, fen, result, user_color, opponent, opponent_rating, played_at, analyzed"


def _row_to_record(row: Sequence[Any]) -> GameRecord:
    return GameRecord(
        id=row[0], user_id=row[1], pgn=row[2], fen=row[3], result=row[4],
        user_color=row[5], opponent=row[6], opponent_rating=row[7],
        played_at=datetime.fromisoformat(row[8]), analyzed=bool(row[9]),
    )


class SqliteGameRepository(GameRepository):
    """
    A `GameRepository` backed by a local SQLite database.

    Every query is scoped to a user id; a game owned by someone else behaves
    exactly like a game that does not exist.
    """

    def __init__(self, settings: PersistenceSettings):
        """
        Initializes the repository without opening the database.

        Args:
            settings: The persistence configuration containing the database file path.
        """
        self._db_path = Path(settings.db_filepath)
        self._default_page_size = settings.default_page_size
        self._connection: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> "SqliteGameRepository":
        """Opens the connection and creates the schema on entering the context."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path, timeout=10.0)
            await self._connection.execute("PRAGMA journal_mode=WAL;")
            await self._connection.execute(CREATE_GAMES_TABLE_SQL)
            await self._connection.execute(CREATE_USER_INDEX_SQL)
            await self._connection.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to initialize game database: {e}") from e
        logger.info("Game repository opened.", path=str(self._db_path))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Closes the database connection on exiting the context."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise PersistenceError("Game repository is not connected.")
        return self._connection

    # --- Public API ---

    async def save_game(self, user_id: str, game: NewGame) -> GameRecord:
        """
        Stores a finished game for a user.

        Returns:
            The stored record, including its new id and timestamp.

        Raises:
            PersistenceError: If the game has no PGN or the write fails.
        """
        if not game.pgn:
            raise PersistenceError("PGN is required to save a game.")
        try:
            record = await self._insert_game(user_id, game)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save game: {e}") from e
        metrics.GAMES_SAVED_TOTAL.labels(result=game.result or "unknown").inc()
        logger.info("Game saved.", game_id=record.id, user_id=user_id, result=game.result)
        return record

    async def list_games(self, user_id: str, limit: int = 20, offset: int = 0) -> Tuple[List[GameRecord], int]:
        """
        Lists a user's games, newest first.

        Returns:
            A page of records and the user's total number of games.
        """
        limit = limit if limit > 0 else self._default_page_size
        offset = max(0, offset)
        try:
            return await self._select_page(user_id, limit, offset)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list games: {e}") from e

    async def get_game(self, game_id: int, user_id: str) -> GameRecord:
        """
        Raises:
            GameNotFoundError: If the game does not exist for this user.
        """
        try:
            record = await self._select_one(game_id, user_id)
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to load game {game_id}: {e}") from e
        if record is None:
            raise GameNotFoundError(f"Game {game_id} not found.")
        return record

    async def delete_game(self, game_id: int, user_id: str) -> bool:
        """Deletes a user's game. Returns False if there was nothing to delete."""
        try:
            deleted = await self._execute_write(
                "DELETE FROM games WHERE id = ? AND user_id = ?", (game_id, user_id)
            )
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to delete game {game_id}: {e}") from e
        if deleted:
            logger.info("Game deleted.", game_id=game_id, user_id=user_id)
        return deleted > 0

    async def mark_analyzed(self, game_id: int, user_id: str) -> bool:
        """Flags a game as analyzed. Returns False if the game does not exist for this user."""
        try:
            updated = await self._execute_write(
                "UPDATE games SET analyzed = 1 WHERE id = ? AND user_id = ?", (game_id, user_id)
            )
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to update game {game_id}: {e}") from e
        return updated > 0

    # --- Retried database operations ---

    @retry_with_backoff(RETRYABLE_EXCEPTIONS, operation="games.insert", should_retry=is_transient_sqlite_error)
    async def _insert_game(self, user_id: str, game: NewGame) -> GameRecord:
        conn = self._ensure_connected()
        played_at = datetime.now(timezone.utc)
        opponent = game.opponent or DEFAULT_OPPONENT
        try:
            cursor = await conn.execute(
                "INSERT INTO games (user_id, pgn, fen, source, result, user_color, opponent, opponent_rating, played_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (user_id, game.pgn, game.fen, GAME_SOURCE, game.result, game.user_color,
                 opponent, game.opponent_rating, played_at.isoformat()),
            )
            game_id = cursor.lastrowid
            await cursor.close()
            await conn.commit()
        except aiosqlite.Error:
            await conn.rollback()
            raise
        return GameRecord(
            id=game_id, user_id=user_id, pgn=game.pgn, fen=game.fen, result=game.result,
            user_color=game.user_color, opponent=opponent, opponent_rating=game.opponent_rating,
            played_at=played_at, analyzed=False,
        )

    @retry_with_backoff(RETRYABLE_EXCEPTIONS, operation="games.list", should_retry=is_transient_sqlite_error)
    async def _select_page(self, user_id: str, limit: int, offset: int) -> Tuple[List[GameRecord], int]:
        conn = self._ensure_connected()
        async with conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM games WHERE user_id = ? "
            "ORDER BY played_at DESC, id DESC LIMIT ? OFFSET ?",
            (user_id, limit, offset),
        ) as cursor:
            rows = await cursor.fetchall()
        async with conn.execute("SELECT COUNT(*) FROM games WHERE user_id = ?", (user_id,)) as cursor:
            (total,) = await cursor.fetchone()
        return [_row_to_record(row) for row in rows], total

    @retry_with_backoff(RETRYABLE_EXCEPTIONS, operation="games.get", should_retry=is_transient_sqlite_error)
    async def _select_one(self, game_id: int, user_id: str) -> Optional[GameRecord]:
        conn = self._ensure_connected()
        async with conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM games WHERE id = ? AND user_id = ?", (game_id, user_id)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    @retry_with_backoff(RETRYABLE_EXCEPTIONS, operation="games.write", should_retry=is_transient_sqlite_error)
    async def _execute_write(self, query: str, params: Tuple[Any, ...]) -> int:
        conn = self._ensure_connected()
        try:
            cursor = await conn.execute(query, params)
            affected = cursor.rowcount
            await cursor.close()
            await conn.commit()
        except aiosqlite.Error:
            await conn.rollback()
            raise
        return affected
