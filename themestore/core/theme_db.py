"""SQLite-backed metadata store for theme records."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Mapping

from themestore.core.models import ApprovalState, SavableMetadata, ThemeMetadata
from themestore.errors import ErrorCode, PersistenceError

logger = logging.getLogger("themestore.theme_db")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS themes (
    file_id           TEXT    PRIMARY KEY,
    file_name         TEXT    NOT NULL,
    theme_name        TEXT    NOT NULL DEFAULT '',
    theme_author      TEXT    NOT NULL DEFAULT '',
    theme_description TEXT    NOT NULL DEFAULT '',
    message_id        TEXT    UNIQUE,
    approval_state    TEXT    NOT NULL,
    color             TEXT    NOT NULL DEFAULT '',
    alpha             REAL    NOT NULL DEFAULT 0,
    icon              TEXT    NOT NULL DEFAULT '',
    created_at        TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at        TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS themes_approval_state ON themes (approval_state);
"""

_COLUMNS = (
    "file_name",
    "file_id",
    "theme_name",
    "theme_author",
    "theme_description",
    "message_id",
    "approval_state",
    "color",
    "alpha",
    "icon",
)

# file_id is the identity and never rewritten.
UPDATABLE_FIELDS: frozenset[str] = frozenset(_COLUMNS) - {"file_id"}


class ThemeDatabase:
    """Stores one row per theme identity."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def open(self) -> None:
        """Open the DB and initialize schema."""
        if self._conn is not None:
            return
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(path=self._db_path, details={"original": str(exc)}) from exc
        self._conn = conn

    def close(self) -> None:
        """Close the active DB connection."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    def __enter__(self) -> ThemeDatabase:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- writes --

    def upsert_theme(self, metadata: ThemeMetadata | SavableMetadata) -> None:
        """Insert or update the record for metadata.file_id."""
        row = metadata.to_savable() if isinstance(metadata, ThemeMetadata) else metadata
        values = (
            row.file_name,
            row.file_id,
            row.theme_name,
            row.theme_author,
            row.theme_description,
            row.message_id,
            row.approval_state.value,
            row.color,
            float(row.alpha),
            row.icon,
        )
        self._write(
            """
            INSERT INTO themes (
                file_name, file_id, theme_name, theme_author, theme_description,
                message_id, approval_state, color, alpha, icon
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(file_id) DO UPDATE SET
                file_name = excluded.file_name,
                theme_name = excluded.theme_name,
                theme_author = excluded.theme_author,
                theme_description = excluded.theme_description,
                message_id = excluded.message_id,
                approval_state = excluded.approval_state,
                color = excluded.color,
                alpha = excluded.alpha,
                icon = excluded.icon,
                updated_at = CURRENT_TIMESTAMP
            """,
            values,
        )
        logger.debug("upserted theme %s", row.file_id)

    def update_fields(self, file_id: str, partial: Mapping[str, Any]) -> bool:
        """Update some columns of one record; returns False when no row matched."""
        unknown = sorted(key for key in partial if key not in UPDATABLE_FIELDS)
        if unknown:
            raise PersistenceError(
                f"Cannot update fields: {', '.join(unknown)}",
                code=ErrorCode.STORE_CONSTRAINT,
                details={"file_id": file_id},
            )
        if not partial:
            return self.find_by_id(file_id) is not None
        assignments = ", ".join(f"{key} = ?" for key in partial)
        try:
            values = [_column_value(key, value) for key, value in partial.items()]
        except (TypeError, ValueError) as exc:
            raise PersistenceError(
                str(exc),
                code=ErrorCode.STORE_CONSTRAINT,
                details={"file_id": file_id},
            ) from exc
        cursor = self._write(
            f"UPDATE themes SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE file_id = ?",
            (*values, file_id),
        )
        return cursor.rowcount > 0

    def delete_by_id(self, file_id: str) -> bool:
        """Remove one record; returns False when nothing was deleted."""
        cursor = self._write("DELETE FROM themes WHERE file_id = ?", (file_id,))
        return cursor.rowcount > 0

    # -- reads --

    def find_by_id(self, file_id: str) -> ThemeMetadata | None:
        rows = self._read("SELECT * FROM themes WHERE file_id = ?", (file_id,))
        return _row_to_metadata(rows[0]) if rows else None

    def find_by_message_id(self, message_id: str) -> ThemeMetadata | None:
        rows = self._read("SELECT * FROM themes WHERE message_id = ?", (message_id,))
        return _row_to_metadata(rows[0]) if rows else None

    def find_by_name(self, query: str) -> list[ThemeMetadata]:
        """Return themes whose name contains query (case-insensitive)."""
        pattern = "%" + _escape_like(query) + "%"
        rows = self._read(
            "SELECT * FROM themes WHERE theme_name LIKE ? ESCAPE '\\' ORDER BY theme_name",
            (pattern,),
        )
        return [_row_to_metadata(row) for row in rows]

    def list_accepted(self, limit: int, offset: int = 0) -> list[ThemeMetadata]:
        rows = self._read(
            """
            SELECT * FROM themes
            WHERE approval_state = ?
            ORDER BY created_at, file_id
            LIMIT ? OFFSET ?
            """,
            (ApprovalState.ACCEPTED.value, max(int(limit), 0), max(int(offset), 0)),
        )
        return [_row_to_metadata(row) for row in rows]

    def status(self, file_id: str) -> ApprovalState | None:
        theme = self.find_by_id(file_id)
        return theme.approval_state if theme is not None else None

    def count(self) -> int:
        rows = self._read("SELECT COUNT(*) AS total FROM themes", ())
        return int(rows[0]["total"])

    # -- internals --

    def _write(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Cursor:
        with self._lock:
            conn = self._conn_or_raise()
            try:
                cursor = conn.execute(sql, params)
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                raise PersistenceError(
                    code=ErrorCode.STORE_CONSTRAINT,
                    details={"original": str(exc)},
                ) from exc
            except sqlite3.Error as exc:
                conn.rollback()
                raise PersistenceError(details={"original": str(exc)}) from exc
            return cursor

    def _read(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._conn_or_raise()
            try:
                cursor = conn.execute(sql, params)
                return cursor.fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(details={"original": str(exc)}) from exc

    def _conn_or_raise(self) -> sqlite3.Connection:
        if self._conn is None:
            raise PersistenceError("ThemeDatabase is not open")
        return self._conn


def _column_value(key: str, value: Any) -> Any:
    if key == "approval_state":
        state = value if isinstance(value, ApprovalState) else ApprovalState.from_value(value)
        return state.value
    if key == "alpha":
        return float(value)
    return value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_metadata(row: sqlite3.Row) -> ThemeMetadata:
    return SavableMetadata(
        file_name=str(row["file_name"]),
        file_id=str(row["file_id"]),
        theme_name=str(row["theme_name"] or ""),
        theme_author=str(row["theme_author"] or ""),
        theme_description=str(row["theme_description"] or ""),
        message_id=row["message_id"],
        approval_state=ApprovalState.from_value(row["approval_state"]),
        color=str(row["color"] or ""),
        alpha=float(row["alpha"] or 0.0),
        icon=str(row["icon"] or ""),
    ).to_metadata()
