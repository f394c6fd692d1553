"""Pooled SQLite connections for the skill-rating store."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Hands out at most ``max_connections`` connections to one database file."""

    def __init__(self, database: str, max_connections: int = 5):
        self.database = database
        self.max_connections = max_connections
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._opened = 0

    def _open(self) -> sqlite3.Connection:
        # Request handlers run in FastAPI's threadpool, so a connection may be
        # returned by a different thread than the one that opened it.
        conn = sqlite3.connect(self.database, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._idle.get(block=False)
        except Empty:
            pass
        with self._lock:
            if self._opened < self.max_connections:
                self._opened += 1
                logger.debug("Opened SQLite connection %d/%d for %s", self._opened, self.max_connections, self.database)
                return self._open()
        return self._idle.get(block=True)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        connection = self._acquire()
        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._idle.put(connection)
            except sqlite3.Error as exc:
                logger.error("Dropping broken SQLite connection: %s", exc)
                connection.close()
                with self._lock:
                    self._opened -= 1

    def close_all(self) -> None:
        while True:
            try:
                connection = self._idle.get(block=False)
            except Empty:
                break
            connection.close()
            with self._lock:
                self._opened -= 1
