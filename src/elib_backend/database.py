"""
SQLite database for book metadata.

This module provides a simple SQLite-based persistence layer for book records.
Asset references are stored as their URLs; the asset kind is implied by the
column. Connections are opened per call so one ``BookDatabase`` can be shared
by concurrent requests.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import PersistenceError
from .models import AssetKind, AssetReference, Book

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/books.db")

# Columns an update is allowed to write; owner_id and created_at are not among them
UPDATABLE_COLUMNS = ("title", "genre", "description", "cover_url", "file_url")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: datetime) -> str:
    """Serialize datetime to ISO format string."""
    return dt.isoformat()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookDatabase:
    """
    SQLite database for book persistence.

    Thread-safe: SQLite handles concurrent access with WAL mode. There is no
    version column; concurrent updates of one book race and the last write wins.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection; sqlite errors surface as PersistenceError."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error(f"Book database error: {exc}")
            raise PersistenceError(f"Book database error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    genre TEXT NOT NULL,
                    description TEXT,
                    cover_url TEXT NOT NULL,
                    file_url TEXT NOT NULL,
                    owner_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_books_created_at
                ON books(created_at DESC)
            """)

    def create(self, book: Book) -> Book:
        """
        Insert a new book record.

        Args:
            book: Fully populated book, including id and timestamps

        Returns:
            The stored record
        """
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO books (
                    id, title, genre, description, cover_url, file_url,
                    owner_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                book.id,
                book.title,
                book.genre,
                book.description,
                book.cover_image.url,
                book.document.url,
                book.owner_id,
                _serialize_datetime(book.created_at),
                _serialize_datetime(book.updated_at),
            ))
        return book

    def find_by_id(self, book_id: str) -> Optional[Book]:
        """
        Retrieve a book by ID.

        Returns:
            The book or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM books WHERE id = ?", (book_id,)
            ).fetchone()

            if not row:
                return None

            return self._row_to_book(row)

    def list_books(self) -> List[Book]:
        """List all books, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM books ORDER BY created_at DESC"
            ).fetchall()

            return [self._row_to_book(row) for row in rows]

    def update_by_id(self, book_id: str, changes: Dict[str, Any]) -> Optional[Book]:
        """
        Write the given columns and bump ``updated_at``.

        Args:
            book_id: The book ID
            changes: Column values, restricted to ``UPDATABLE_COLUMNS``

        Returns:
            The updated book, or None if no such book exists
        """
        unknown = set(changes) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Columns cannot be updated: {sorted(unknown)}")

        updates = [f"{column} = ?" for column in changes]
        values: List[Any] = list(changes.values())
        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_utcnow()))
        values.append(book_id)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE books SET {', '.join(updates)} WHERE id = ?",
                values
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM books WHERE id = ?", (book_id,)
            ).fetchone()
            return self._row_to_book(row)

    def delete_by_id(self, book_id: str) -> bool:
        """
        Delete a book record.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            return cursor.rowcount > 0

    def _row_to_book(self, row: sqlite3.Row) -> Book:
        """Convert a database row to a Book."""
        return Book(
            id=row["id"],
            title=row["title"],
            genre=row["genre"],
            description=row["description"],
            cover_image=AssetReference(url=row["cover_url"], kind=AssetKind.IMAGE),
            document=AssetReference(url=row["file_url"], kind=AssetKind.DOCUMENT),
            owner_id=row["owner_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
