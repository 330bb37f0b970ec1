"""App-group key-value namespace shared by the share surface and the main app.

Values live in a small SQLite file inside the shared container, one row per
(suite, key). SQLite gives us cross-process locking for free, which the
pending queue relies on for its read-modify-write append.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_SUITE = "group.com.bookmarkapp.shared"
DB_FILENAME = "shared_defaults.sqlite3"


class ContainerMissingError(RuntimeError):
    """The shared container directory does not exist (setup problem)."""

    def __init__(self, path: Path):
        super().__init__(f"Missing app group container at {path}. Check shared_container in config.")
        self.path = path


def require_container(path: str | Path) -> Path:
    path = Path(path)
    if not path.is_dir():
        raise ContainerMissingError(path)
    return path


class SharedDefaults:
    """String/bytes values keyed by name within one app-group suite."""

    def __init__(self, container: str | Path, suite: str = DEFAULT_SUITE):
        self.container = require_container(container)
        self.suite = suite
        self.db_path = self.container / DB_FILENAME
        with self._connect() as db:
            db.execute("""CREATE TABLE IF NOT EXISTS defaults (
                suite TEXT NOT NULL,
                key TEXT NOT NULL,
                value BLOB,
                updated_at TEXT DEFAULT (datetime('now')),
                PRIMARY KEY (suite, key)
            )""")

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path, timeout=10, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Exclusive write transaction; other processes block until it ends."""
        with self._connect() as db:
            db.execute("BEGIN IMMEDIATE")
            try:
                yield _Tx(db, self.suite)
            except BaseException:
                db.execute("ROLLBACK")
                raise
            db.execute("COMMIT")

    def get_data(self, key: str) -> bytes | None:
        with self._connect() as db:
            return _Tx(db, self.suite).get(key)

    def set_data(self, key: str, value: bytes) -> None:
        with self.transaction() as tx:
            tx.set(key, value)

    def get_string(self, key: str) -> str | None:
        data = self.get_data(key)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            log.warning("Value for %s in %s is not valid UTF-8", key, self.suite)
            return None

    def set_string(self, key: str, value: str | None) -> None:
        if value is None:
            self.remove(key)
        else:
            self.set_data(key, value.encode("utf-8"))

    def remove(self, key: str) -> None:
        with self.transaction() as tx:
            tx.remove(key)


class _Tx:
    def __init__(self, db: sqlite3.Connection, suite: str):
        self._db = db
        self._suite = suite

    def get(self, key: str) -> bytes | None:
        row = self._db.execute(
            "SELECT value FROM defaults WHERE suite = ? AND key = ?", (self._suite, key)
        ).fetchone()
        if row is None or row[0] is None:
            return None
        value = row[0]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def set(self, key: str, value: bytes) -> None:
        self._db.execute(
            """INSERT INTO defaults (suite, key, value) VALUES (?, ?, ?)
               ON CONFLICT(suite, key) DO UPDATE SET value = excluded.value, updated_at = datetime('now')""",
            (self._suite, key, sqlite3.Binary(value)),
        )

    def remove(self, key: str) -> None:
        self._db.execute("DELETE FROM defaults WHERE suite = ? AND key = ?", (self._suite, key))
