"""
SQLite migration runner for the workspace store.

Migrations are SQL files under backend/db/migrations named like:
    0001_description.sql

Applied versions and their checksums are tracked in `schema_migrations`.
Concurrent workers starting against the same database file serialize on a
file lock next to it.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

_SQLITE_FILE_PREFIXES = ("sqlite+aiosqlite:///", "sqlite:///")
_MIGRATION_FILE_PATTERN = re.compile(r"^(?P<version>\d{4,})_.*\.sql$")


@dataclass(frozen=True)
class MigrationFile:
    """A discovered migration file."""

    version: str
    path: Path
    checksum: str


def sqlite_file_path(database_url: str) -> Optional[Path]:
    """
    Local file path of a sqlite SQLAlchemy URL, or None for in-memory DBs.

    Supports sqlite+aiosqlite:///path.db and sqlite:///path.db, with or
    without a query string.
    """
    for prefix in _SQLITE_FILE_PREFIXES:
        if not database_url.startswith(prefix):
            continue
        raw_path = database_url[len(prefix) :]
        raw_path = unquote(raw_path.split("?", 1)[0].split("#", 1)[0])
        if not raw_path or raw_path == ":memory:":
            return None
        return Path(raw_path)
    raise ValueError(
        "Unsupported DATABASE_URL for migration runner. "
        "Expected sqlite+aiosqlite:///... or sqlite:///..."
    )


def _checksum(content: bytes) -> str:
    # CRLF and LF checkouts must hash the same
    try:
        text = content.decode("utf-8").replace("\r\n", "\n").replace("\r", "\n")
        payload = text.encode("utf-8")
    except UnicodeDecodeError:
        payload = content
    return hashlib.sha256(payload).hexdigest()


class MigrationRunner:
    """Discover and apply SQL migrations with version tracking."""

    def __init__(
        self,
        database_url: str,
        migrations_dir: Optional[Path] = None,
        lock_file_path: Optional[Path] = None,
        lock_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.database_file = sqlite_file_path(database_url)
        self.migrations_dir = (
            Path(migrations_dir)
            if migrations_dir is not None
            else Path(__file__).resolve().parent / "migrations"
        )
        self.lock_file_path = self._resolve_lock_file_path(lock_file_path)
        if lock_timeout_seconds is None:
            try:
                lock_timeout_seconds = float(
                    os.getenv("DB_MIGRATION_LOCK_TIMEOUT_SEC", "10")
                )
            except ValueError:
                lock_timeout_seconds = 10.0
        self.lock_timeout_seconds = max(0.0, lock_timeout_seconds)

    def _resolve_lock_file_path(self, explicit: Optional[Path]) -> Optional[Path]:
        if explicit is not None:
            return Path(explicit)
        configured = os.getenv("DB_MIGRATION_LOCK_FILE", "").strip()
        if configured:
            candidate = Path(configured).expanduser()
            if not candidate.is_absolute() and self.database_file is not None:
                candidate = self.database_file.parent / candidate
            return candidate.resolve()
        if self.database_file is not None:
            return Path(f"{self.database_file}.migrate.lock")
        return None

    async def apply_pending(self) -> List[str]:
        """Apply all pending migrations and return the applied versions."""
        return await asyncio.to_thread(self._apply_pending_sync)

    def discover(self) -> List[MigrationFile]:
        if not self.migrations_dir.exists():
            return []
        found: List[MigrationFile] = []
        for path in sorted(self.migrations_dir.glob("*.sql")):
            match = _MIGRATION_FILE_PATTERN.match(path.name)
            if not match:
                continue
            found.append(
                MigrationFile(
                    version=match.group("version"),
                    path=path,
                    checksum=_checksum(path.read_bytes()),
                )
            )
        return found

    def _apply_pending_sync(self) -> List[str]:
        migrations = self.discover()
        if not migrations or self.database_file is None:
            return []
        if self.lock_file_path is None:
            return self._apply_unlocked(migrations)

        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.lock_file_path), timeout=self.lock_timeout_seconds)
        try:
            with lock:
                return self._apply_unlocked(migrations)
        except Timeout as exc:
            raise RuntimeError(
                "Timed out waiting for migration lock: "
                f"{self.lock_file_path} ({self.lock_timeout_seconds}s)"
            ) from exc

    def _apply_unlocked(self, migrations: List[MigrationFile]) -> List[str]:
        if self.database_file is None:
            return []
        self.database_file.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.database_file) as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version TEXT PRIMARY KEY, "
                "applied_at TEXT NOT NULL, "
                "checksum TEXT NOT NULL)"
            )
            applied: Dict[str, str] = {
                str(version): str(checksum)
                for version, checksum in conn.execute(
                    "SELECT version, checksum FROM schema_migrations"
                ).fetchall()
            }

            newly_applied: List[str] = []
            for migration in migrations:
                recorded = applied.get(migration.version)
                if recorded is not None:
                    if recorded != migration.checksum:
                        raise RuntimeError(
                            "Checksum mismatch for migration "
                            f"{migration.version}: recorded={recorded} "
                            f"current={migration.checksum}"
                        )
                    continue

                logger.info("Applying migration %s", migration.path.name)
                conn.executescript(migration.path.read_text(encoding="utf-8"))
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at, checksum) "
                    "VALUES (?, ?, ?)",
                    (
                        migration.version,
                        datetime.now(timezone.utc).isoformat(),
                        migration.checksum,
                    ),
                )
                conn.commit()
                newly_applied.append(migration.version)
            return newly_applied


async def apply_pending_migrations(
    database_url: str, migrations_dir: Optional[Path] = None
) -> List[str]:
    """Convenience wrapper used by SQLite client startup."""
    runner = MigrationRunner(database_url=database_url, migrations_dir=migrations_dir)
    return await runner.apply_pending()
