"""SQLite store for users and weight measurements."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from config import DATABASE_PATH
from errors import PersistenceError


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    """Context manager for database connections.

    Any sqlite3 failure inside the block is raised as PersistenceError.
    """
    try:
        conn = sqlite3.connect(DATABASE_PATH)
    except sqlite3.Error as err:
        raise PersistenceError(f"Cannot open {DATABASE_PATH}: {err}") from err
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL")  # Non-blocking reads
        yield conn
    except sqlite3.Error as err:
        raise PersistenceError(str(err)) from err
    finally:
        conn.close()


def init_db() -> None:
    """Initialize database with schema."""
    with get_connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                height INTEGER,
                target_weight REAL
            );

            CREATE TABLE IF NOT EXISTS measurements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                weight REAL NOT NULL,
                bmi REAL,
                created_at DATETIME NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id)
            );

            CREATE INDEX IF NOT EXISTS idx_measurements_created_at
            ON measurements(created_at);
        """)
        conn.commit()


# User functions
def get_user() -> dict | None:
    """Get the first user, if one has been set up."""
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM users ORDER BY id LIMIT 1").fetchone()
        return dict(row) if row else None


def save_user(
    name: str,
    height: int | None = None,
    target_weight: float | None = None,
    user_id: int | None = None,
) -> int:
    """Create or update a user. Returns the user ID."""
    with get_connection() as conn:
        if user_id:
            conn.execute(
                "UPDATE users SET name = ?, height = ?, target_weight = ? WHERE id = ?",
                (name, height, target_weight, user_id),
            )
            conn.commit()
            return user_id
        else:
            cursor = conn.execute(
                "INSERT INTO users (name, height, target_weight) VALUES (?, ?, ?)",
                (name, height, target_weight),
            )
            conn.commit()
            return cursor.lastrowid or 0


# Measurement functions
def add_measurement(
    user_id: int | None,
    weight: float,
    bmi: float,
    created_at: datetime | None = None,
) -> dict:
    """Append a measurement and return the stored record."""
    timestamp = (created_at or datetime.now()).isoformat(sep=" ", timespec="seconds")
    with get_connection() as conn:
        cursor = conn.execute(
            "INSERT INTO measurements (user_id, weight, bmi, created_at) VALUES (?, ?, ?, ?)",
            (user_id, weight, bmi, timestamp),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM measurements WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        return dict(row)


def get_measurements(limit: int = 100, user_id: int | None = None) -> list[dict]:
    """Get recent measurements, newest first, optionally filtered by user."""
    with get_connection() as conn:
        if user_id is not None:
            rows = conn.execute(
                """
                SELECT * FROM measurements
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                """
                SELECT * FROM measurements
                ORDER BY created_at DESC, id DESC LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]


def get_latest_measurement(user_id: int | None = None) -> dict | None:
    """Get the most recent measurement."""
    rows = get_measurements(limit=1, user_id=user_id)
    return rows[0] if rows else None


def delete_measurement(measurement_id: int) -> bool:
    """Delete a measurement. Returns False if it did not exist."""
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM measurements WHERE id = ?", (measurement_id,))
        conn.commit()
        return cursor.rowcount > 0
