import hashlib
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple
from uuid import uuid4

from .errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class APIKeyRecord:
    id: str
    owner: str
    prefix: str
    is_active: bool
    created_at: str


class KeyManager:
    """
    Issues and validates API keys; each key identifies one owner.
    """

    def __init__(self, db_path: str = "data/api_keys.db"):
        self.db_path = Path(db_path)
        self._init_db()

    @contextmanager
    def _get_conn(self):
        """Open a key store connection; sqlite errors surface as PersistenceError."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error(f"API key store error: {exc}")
            raise PersistenceError(f"API key store error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize the database schema if it doesn't exist."""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS api_keys (
                    id TEXT PRIMARY KEY,
                    key_hash TEXT UNIQUE NOT NULL,
                    prefix TEXT NOT NULL,
                    owner TEXT NOT NULL,
                    is_active BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def _hash_key(self, key: str) -> str:
        """SHA-256 hash of the API key."""
        return hashlib.sha256(key.encode()).hexdigest()

    @staticmethod
    def _to_record(row: sqlite3.Row) -> APIKeyRecord:
        return APIKeyRecord(
            id=row["id"],
            owner=row["owner"],
            prefix=row["prefix"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )

    def create_key(self, owner: str) -> Tuple[str, dict]:
        """
        Generate a new API key for an owner.

        Returns:
            Tuple[str, dict]: (raw_api_key, key_record_dict)
            WARNING: raw_api_key is shown ONLY ONCE here.
        """
        raw_key = f"elib_{secrets.token_urlsafe(32)}"
        record = APIKeyRecord(
            id=str(uuid4()),
            owner=owner,
            prefix=raw_key[:9],
            is_active=True,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO api_keys (id, key_hash, prefix, owner, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (record.id, self._hash_key(raw_key), record.prefix, owner, record.created_at))

        return raw_key, asdict(record)

    def validate_key(self, key: str) -> Optional[APIKeyRecord]:
        """
        Validate an API key and return its record if valid.
        """
        if not key:
            return None

        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM api_keys WHERE key_hash = ? AND is_active = 1",
                (self._hash_key(key),)
            ).fetchone()

        return self._to_record(row) if row else None

    def list_keys(self) -> list[dict]:
        """List all API keys (admin only)."""
        with self._get_conn() as conn:
            rows = conn.execute("SELECT * FROM api_keys ORDER BY created_at DESC").fetchall()
            return [asdict(self._to_record(row)) for row in rows]

    def revoke_key(self, key_id: str) -> bool:
        """Revoke a key by ID."""
        with self._get_conn() as conn:
            cursor = conn.execute("UPDATE api_keys SET is_active = 0 WHERE id = ?", (key_id,))
            return cursor.rowcount > 0
