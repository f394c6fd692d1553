import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from schemas import SkillRating, SkillRatingChange
from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def init():
    parent = Path(DB_PATH).parent
    parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS skill_ratings (
              id             INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id        TEXT NOT NULL,
              topic          TEXT NOT NULL,
              dimension      TEXT NOT NULL,
              rating         INTEGER NOT NULL DEFAULT 1200 CHECK (rating BETWEEN 400 AND 2400),
              k_factor       INTEGER NOT NULL DEFAULT 40,
              session_count  INTEGER NOT NULL DEFAULT 0,
              peak_rating    INTEGER NOT NULL DEFAULT 1200,
              updated_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              UNIQUE(user_id, topic, dimension)
            );

            CREATE INDEX IF NOT EXISTS idx_skill_ratings_user
              ON skill_ratings(user_id, topic);

            CREATE TABLE IF NOT EXISTS skill_rating_history (
              id           INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id      TEXT NOT NULL,
              topic        TEXT NOT NULL,
              dimension    TEXT NOT NULL,
              old_rating   INTEGER NOT NULL,
              new_rating   INTEGER NOT NULL,
              delta        INTEGER NOT NULL,
              observed     REAL NOT NULL,
              expected     REAL NOT NULL,
              k_factor     INTEGER NOT NULL,
              created_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_skill_rating_history_user
              ON skill_rating_history(user_id, topic, created_at DESC);
            """
        )
        con.commit()


# -------------- skill ratings --------------
def _row_to_rating(row: sqlite3.Row) -> SkillRating:
    return SkillRating(
        topic=row["topic"],
        dimension=row["dimension"],
        rating=row["rating"],
        k_factor=row["k_factor"],
        session_count=row["session_count"],
        peak_rating=row["peak_rating"],
    )


def get_skill_rating(user_id: str, topic: str, dimension: str) -> Optional[SkillRating]:
    rows = _query(
        """
        SELECT topic, dimension, rating, k_factor, session_count, peak_rating
        FROM skill_ratings
        WHERE user_id = ? AND topic = ? AND dimension = ?
        """,
        (user_id, topic, dimension),
    )
    if not rows:
        return None
    return _row_to_rating(rows[0])


def list_skill_ratings(user_id: str, topic: Optional[str] = None) -> List[SkillRating]:
    sql = """
        SELECT topic, dimension, rating, k_factor, session_count, peak_rating
        FROM skill_ratings
        WHERE user_id = ?
    """
    params: list[Any] = [user_id]
    if topic:
        sql += " AND topic = ?"
        params.append(topic)
    sql += " ORDER BY topic, dimension"
    return [_row_to_rating(row) for row in _query(sql, params)]


def upsert_skill_rating(user_id: str, rating: SkillRating) -> None:
    _exec(
        """
        INSERT INTO skill_ratings(
            user_id, topic, dimension, rating, k_factor, session_count, peak_rating, updated_at
        ) VALUES (?,?,?,?,?,?,?,CURRENT_TIMESTAMP)
        ON CONFLICT(user_id, topic, dimension) DO UPDATE SET
            rating=excluded.rating,
            k_factor=excluded.k_factor,
            session_count=excluded.session_count,
            peak_rating=MAX(skill_ratings.peak_rating, excluded.peak_rating),
            updated_at=CURRENT_TIMESTAMP
        """,
        (
            user_id,
            rating.topic,
            rating.dimension,
            int(rating.rating),
            int(rating.k_factor),
            int(rating.session_count),
            int(rating.peak_rating),
        ),
    )


def log_skill_rating_change(user_id: str, topic: str, change: SkillRatingChange) -> None:
    _exec(
        """
        INSERT INTO skill_rating_history(
            user_id, topic, dimension, old_rating, new_rating, delta, observed, expected, k_factor
        ) VALUES (?,?,?,?,?,?,?,?,?)
        """,
        (
            user_id,
            topic,
            change.dimension,
            change.old_rating,
            change.new_rating,
            change.delta,
            float(change.observed),
            float(change.expected),
            change.k_factor,
        ),
    )


def list_skill_rating_history(user_id: str, topic: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    sql = """
        SELECT topic, dimension, old_rating, new_rating, delta, observed, expected, k_factor, created_at
        FROM skill_rating_history
        WHERE user_id = ?
    """
    params: list[Any] = [user_id]
    if topic:
        sql += " AND topic = ?"
        params.append(topic)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(int(limit))
    return [dict(row) for row in _query(sql, params)]
