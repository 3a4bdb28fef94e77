"""Database layer for EmojiChess games."""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

import psycopg

from emojichess.models import Game

SCHEMA = """
CREATE TABLE IF NOT EXISTS games (
    sender_id TEXT PRIMARY KEY,
    start_fen TEXT NOT NULL,
    fen TEXT NOT NULL,
    moves TEXT NOT NULL DEFAULT '',
    bot_level INTEGER NOT NULL DEFAULT 0,
    player_color CHAR(1) NOT NULL DEFAULT 'w',
    white_pov BOOLEAN NOT NULL DEFAULT TRUE,
    last_from TEXT,
    status TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS games_archive (
    archive_id BIGSERIAL PRIMARY KEY,
    sender_id TEXT NOT NULL,
    start_fen TEXT NOT NULL,
    fen TEXT NOT NULL,
    moves TEXT NOT NULL DEFAULT '',
    bot_level INTEGER NOT NULL,
    player_color CHAR(1) NOT NULL,
    status TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

GAME_COLUMNS = """sender_id, start_fen, fen, moves, bot_level, player_color, white_pov,
    last_from, status, created_at, updated_at"""


def get_connection_string() -> str:
    """Get database connection string from environment."""
    return os.environ.get(
        "DATABASE_URL",
        "postgresql://localhost:5432/emojichess?user=postgres&password=postgres",
    )


@asynccontextmanager
async def get_connection() -> AsyncIterator[psycopg.AsyncConnection]:
    """Context manager for database connections."""
    conn = await psycopg.AsyncConnection.connect(get_connection_string())
    try:
        yield conn
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    finally:
        await conn.close()


def row_to_game(row) -> Game:
    return Game(
        sender_id=row[0],
        start_fen=row[1],
        fen=row[2],
        moves=row[3].split() if row[3] else [],
        bot_level=row[4],
        player_color=row[5],
        white_pov=row[6],
        last_from=row[7],
        status=row[8],
        created_at=row[9],
        updated_at=row[10],
    )


async def init_schema(conn: psycopg.AsyncConnection) -> None:
    async with conn.cursor() as cur:
        await cur.execute(SCHEMA)


async def get_game(conn: psycopg.AsyncConnection, sender_id: str) -> Game | None:
    """Get the game in progress for a Messenger user."""
    async with conn.cursor() as cur:
        await cur.execute(f"SELECT {GAME_COLUMNS} FROM games WHERE sender_id = %s", (sender_id,))
        row = await cur.fetchone()
    if not row:
        return None
    return row_to_game(row)


async def save_game(conn: psycopg.AsyncConnection, game: Game) -> Game:
    """
    Insert or update a game. Uses sender_id as conflict key.
    Returns the game with timestamps populated.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            INSERT INTO games (
                sender_id, start_fen, fen, moves, bot_level, player_color, white_pov,
                last_from, status
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (sender_id) DO UPDATE SET
                start_fen = EXCLUDED.start_fen,
                fen = EXCLUDED.fen,
                moves = EXCLUDED.moves,
                bot_level = EXCLUDED.bot_level,
                player_color = EXCLUDED.player_color,
                white_pov = EXCLUDED.white_pov,
                last_from = EXCLUDED.last_from,
                status = EXCLUDED.status,
                updated_at = NOW()
            RETURNING {GAME_COLUMNS}
            """,
            (
                game.sender_id,
                game.start_fen,
                game.fen,
                " ".join(game.moves),
                game.bot_level,
                game.player_color,
                game.white_pov,
                game.last_from,
                game.status,
            ),
        )
        row = await cur.fetchone()
    if row:
        return row_to_game(row)
    raise RuntimeError("save_game failed to return row")


async def set_white_pov(conn: psycopg.AsyncConnection, sender_id: str, white_pov: bool) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            "UPDATE games SET white_pov = %s, updated_at = NOW() WHERE sender_id = %s",
            (white_pov, sender_id),
        )


async def archive_game(conn: psycopg.AsyncConnection, sender_id: str) -> bool:
    """Copy a finished game into games_archive. Returns False if there was none.

    The row stays in `games` so the player can still download it; starting a
    new game overwrites it.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO games_archive (
                sender_id, start_fen, fen, moves, bot_level, player_color, status, created_at
            )
            SELECT sender_id, start_fen, fen, moves, bot_level, player_color, status, created_at
            FROM games WHERE sender_id = %s AND status IS NOT NULL
            """,
            (sender_id,),
        )
        return cur.rowcount > 0
