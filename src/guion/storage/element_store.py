"""SQLite element store.

Rows carry no implicit order; a screenplay is rebuilt by sorting on the
composite ``(chapter_index, order_index)`` key.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, cast

from guion.config import GuionSettings, get_logger, get_settings
from guion.exceptions import StorageError
from guion.models import Element, ParsedScreenplay, TitlePageEntry
from guion.ordering import assign_ordering, is_document_ordered, sort_elements
from guion.progress import OperationProgress, check_cancelled

logger = get_logger(__name__)

MEMORY_DATABASE = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS scripts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT,
    title TEXT,
    suppress_scene_numbers INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS elements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    script_id INTEGER NOT NULL REFERENCES scripts(id) ON DELETE CASCADE,
    chapter_index INTEGER NOT NULL,
    order_index INTEGER NOT NULL,
    element_type TEXT NOT NULL,
    element_text TEXT NOT NULL,
    section_level INTEGER NOT NULL DEFAULT 0,
    scene_number TEXT,
    scene_id TEXT,
    is_centered INTEGER NOT NULL DEFAULT 0,
    is_dual_dialogue INTEGER NOT NULL DEFAULT 0,
    UNIQUE (script_id, chapter_index, order_index)
);

CREATE INDEX IF NOT EXISTS idx_elements_order
    ON elements (script_id, chapter_index, order_index);

CREATE TABLE IF NOT EXISTS title_page_entries (
    script_id INTEGER NOT NULL REFERENCES scripts(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    key TEXT NOT NULL,
    entry_values TEXT NOT NULL,
    PRIMARY KEY (script_id, position)
);
"""

ELEMENT_COLUMNS = (
    "chapter_index",
    "order_index",
    "element_type",
    "element_text",
    "section_level",
    "scene_number",
    "scene_id",
    "is_centered",
    "is_dual_dialogue",
)


class ElementStore:
    """Persist parsed screenplays and fetch them back in document order.

    File databases use one connection per thread. An in-memory database is
    a single shared connection. Writes are serialised with a lock.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        settings: GuionSettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        raw_path = db_path if db_path is not None else self.settings.database_path
        self.is_memory = str(raw_path) == MEMORY_DATABASE
        self.db_path = Path(raw_path)
        self._local = threading.local()
        self._shared: sqlite3.Connection | None = None
        self._write_lock = threading.RLock()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        with self._write_lock:
            self._get_connection().executescript(SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        target = MEMORY_DATABASE if self.is_memory else str(self.db_path)
        if not self.is_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                target,
                timeout=self.settings.database_timeout,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageError(
                message=f"Failed to open element store: {target}",
                hint="Check that the database directory is writable",
                details={"path": target, "error": str(e)},
            ) from e
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        with self._connections_lock:
            self._connections.append(conn)
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        if self.is_memory:
            if self._shared is None:
                self._shared = self._connect()
            return self._shared
        if getattr(self._local, "connection", None) is None:
            self._local.connection = self._connect()
        return cast(sqlite3.Connection, self._local.connection)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in one transaction, rolling back on any error."""
        with self._write_lock:
            conn = self._get_connection()
            conn.execute("BEGIN")
            try:
                yield conn
            except Exception as e:
                logger.debug("Transaction rolled back", error=str(e))
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def save(
        self, screenplay: ParsedScreenplay, progress: OperationProgress | None = None
    ) -> int:
        """Store a screenplay with its ordering keys.

        Elements without distinct ordering keys are keyed in list order first.

        Args:
            screenplay: Screenplay with elements in document order.
            progress: Optional progress handle, keyed on elements stored.

        Returns:
            The new script id.

        Raises:
            CancellationError: If cancelled; nothing is stored.
            StorageError: If the database rejects the write.
        """
        elements = screenplay.elements
        if not is_document_ordered(sort_elements(elements)):
            assign_ordering(
                elements,
                chapter_level=self.settings.chapter_heading_level,
                base=self.settings.order_index_base,
            )

        if progress is not None:
            progress.set_total_unit_count(len(elements))
            progress.update(0, "Storing elements")

        batch_size = self.settings.store_batch_size
        placeholders = ", ".join("?" for _ in ELEMENT_COLUMNS)
        insert_sql = (
            f"INSERT INTO elements (script_id, {', '.join(ELEMENT_COLUMNS)}) "  # noqa: S608
            f"VALUES (?, {placeholders})"
        )
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO scripts (filename, title, suppress_scene_numbers) "
                    "VALUES (?, ?, ?)",
                    (
                        screenplay.filename,
                        screenplay.title,
                        int(screenplay.suppress_scene_numbers),
                    ),
                )
                script_id = cast(int, cursor.lastrowid)
                conn.executemany(
                    "INSERT INTO title_page_entries (script_id, position, key, "
                    "entry_values) VALUES (?, ?, ?, ?)",
                    [
                        (script_id, position, entry.key, json.dumps(entry.values))
                        for position, entry in enumerate(screenplay.title_page)
                    ],
                )
                for start in range(0, len(elements), batch_size):
                    check_cancelled(progress, "storage")
                    batch = elements[start : start + batch_size]
                    conn.executemany(
                        insert_sql, [(script_id, *self._row(e)) for e in batch]
                    )
                    if progress is not None:
                        progress.increment(len(batch), "Storing elements")
        except sqlite3.Error as e:
            raise StorageError(
                message="Failed to store screenplay",
                details={"filename": screenplay.filename, "error": str(e)},
            ) from e

        if progress is not None:
            progress.complete(f"Stored {len(elements)} elements")
        logger.info(
            "Stored screenplay",
            script_id=script_id,
            filename=screenplay.filename,
            elements=len(elements),
        )
        return script_id

    @staticmethod
    def _row(element: Element) -> tuple[Any, ...]:
        return (
            element.chapter_index,
            element.order_index,
            element.element_type.value,
            element.element_text,
            element.section_level,
            element.scene_number,
            element.scene_id,
            int(element.is_centered),
            int(element.is_dual_dialogue),
        )

    def fetch_elements(self, script_id: int) -> list[Element]:
        """Fetch a script's elements sorted by (chapter_index, order_index)."""
        rows = self._query(
            f"SELECT {', '.join(ELEMENT_COLUMNS)} FROM elements "  # noqa: S608
            "WHERE script_id = ? ORDER BY chapter_index, order_index",
            (script_id,),
        )
        return [Element.from_dict(dict(row)) for row in rows]

    def fetch_screenplay(self, script_id: int) -> ParsedScreenplay:
        """Rebuild a stored screenplay.

        Raises:
            StorageError: If no script has this id.
        """
        scripts = self._query(
            "SELECT filename, suppress_scene_numbers FROM scripts WHERE id = ?",
            (script_id,),
        )
        if not scripts:
            raise StorageError(
                message=f"No stored script with id {script_id}",
                hint="Use 'guion list' to see stored scripts",
                details={"script_id": script_id},
            )
        entries = self._query(
            "SELECT key, entry_values FROM title_page_entries "
            "WHERE script_id = ? ORDER BY position",
            (script_id,),
        )
        return ParsedScreenplay(
            filename=scripts[0]["filename"],
            elements=self.fetch_elements(script_id),
            title_page=[
                TitlePageEntry(row["key"], json.loads(row["entry_values"]))
                for row in entries
            ],
            suppress_scene_numbers=bool(scripts[0]["suppress_scene_numbers"]),
        )

    def list_scripts(self) -> list[dict[str, Any]]:
        """Summaries of stored scripts, oldest first."""
        rows = self._query(
            "SELECT s.id, s.filename, s.title, s.created_at, "
            "COUNT(e.id) AS element_count, "
            "COUNT(DISTINCT e.chapter_index) AS chapter_count "
            "FROM scripts s LEFT JOIN elements e ON e.script_id = s.id "
            "GROUP BY s.id ORDER BY s.id"
        )
        return [dict(row) for row in rows]

    def delete(self, script_id: int) -> bool:
        """Delete a script and its elements. Returns False if it did not exist."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM scripts WHERE id = ?", (script_id,))
        return cursor.rowcount > 0

    def _query(self, sql: str, parameters: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            with self._write_lock:
                return self._get_connection().execute(sql, parameters).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                message="Element store query failed",
                details={"error": str(e)},
            ) from e

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._shared = None
        self._local = threading.local()

    def __enter__(self) -> ElementStore:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
