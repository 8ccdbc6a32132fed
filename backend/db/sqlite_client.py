"""
SQLite Client for the CodeFlow workspace store

This module implements the SQLite-based storage for:
- Spaces (top-level workspace containers)
- Vaults (nestable folders, each in exactly one space)
- Logs (code files, each in exactly one vault)

Every public operation takes the owner identity explicitly. A row owned by a
different identity is indistinguishable from a missing one.
"""

import logging
import re
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    String,
    Text,
    delete,
    func,
    literal_column,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from errors import Conflict, Internal, InvalidReference, NotFound
from .languages import infer_language
from .migration_runner import apply_pending_migrations
from .paths import resolve_path

logger = logging.getLogger(__name__)

Base = declarative_base()

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

_SQLITE_ADAPTERS_REGISTERED = False


def _register_sqlite_adapters() -> None:
    """
    Register explicit sqlite adapters for Python datetime objects.

    Python 3.12+ deprecates sqlite3's implicit default datetime adapter.
    """
    global _SQLITE_ADAPTERS_REGISTERED
    if _SQLITE_ADAPTERS_REGISTERED:
        return
    sqlite3.register_adapter(datetime, lambda value: value.isoformat(sep=" "))
    _SQLITE_ADAPTERS_REGISTERED = True


_register_sqlite_adapters()


def _utc_now_naive() -> datetime:
    """Naive UTC datetime; SQLite stores no timezone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def new_id() -> str:
    """Opaque, globally unique identifier."""
    return uuid.uuid4().hex


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def _fetch_order(model) -> Any:
    """Insertion order: SQLite's implicit rowid."""
    return literal_column(f"{model.__tablename__}.rowid")


# =============================================================================
# ORM Models
# =============================================================================


class Space(Base):
    """Root container. Has no parent."""

    __tablename__ = "spaces"

    id = Column(String(32), primary_key=True, default=new_id)
    owner_id = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)
    updated_at = Column(DateTime, default=_utc_now_naive, nullable=False)


class Vault(Base):
    """A folder-like node. ``parent_vault_id`` is NULL for a root vault.

    ``path`` is denormalized: parent path + "/" + name, written on create and
    on rename.
    """

    __tablename__ = "vaults"

    id = Column(String(32), primary_key=True, default=new_id)
    space_id = Column(String(32), nullable=False)
    owner_id = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    parent_vault_id = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)
    updated_at = Column(DateTime, default=_utc_now_naive, nullable=False)


class Log(Base):
    """A single code file inside a vault."""

    __tablename__ = "logs"

    id = Column(String(32), primary_key=True, default=new_id)
    space_id = Column(String(32), nullable=False)
    vault_id = Column(String(32), nullable=False)
    owner_id = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    language = Column(String(64), nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)
    updated_at = Column(DateTime, default=_utc_now_naive, nullable=False)


def space_to_dict(row: Space) -> Dict[str, Any]:
    return {
        "id": row.id,
        "ownerId": row.owner_id,
        "name": row.name,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
    }


def vault_to_dict(row: Vault) -> Dict[str, Any]:
    return {
        "id": row.id,
        "spaceId": row.space_id,
        "ownerId": row.owner_id,
        "name": row.name,
        "path": row.path,
        "parentVaultId": row.parent_vault_id,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
    }


def log_to_dict(row: Log) -> Dict[str, Any]:
    return {
        "id": row.id,
        "spaceId": row.space_id,
        "vaultId": row.vault_id,
        "ownerId": row.owner_id,
        "name": row.name,
        "path": row.path,
        "language": row.language,
        "content": row.content,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
    }


def _require_reference(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidReference(f"{field_name} is required")
    if not is_valid_id(value):
        raise InvalidReference(f"Invalid {field_name}: {value!r}")
    return value


# =============================================================================
# SQLite Client
# =============================================================================


class SQLiteClient:
    """
    Async SQLite client for workspace operations.

    Core operations:
    - create/get/list/update/delete spaces, vaults and logs
    - load_* helpers that resolve an owned row inside an open session,
      shared with the cascade engine
    - collect_descendant_vault_ids: transitive closure over parent pointers
    """

    def __init__(self, database_url: str, busy_timeout_sec: float = 5.0):
        """
        Initialize the SQLite client.

        Args:
            database_url: SQLAlchemy async URL, e.g.
                         "sqlite+aiosqlite:///codeflow.db"
            busy_timeout_sec: How long a statement waits on a locked database
        """
        self.database_url = database_url
        self.engine = create_async_engine(
            database_url,
            echo=False,
            connect_args={"timeout": busy_timeout_sec},
        )
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init_db(self):
        """Create tables if they don't exist, then apply SQL migrations."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        applied = await apply_pending_migrations(self.database_url)
        if applied:
            logger.info("Applied schema migrations: %s", ", ".join(applied))

    async def close(self):
        """Close the database connection."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self):
        """Get an async session that commits on success and rolls back on error."""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise Conflict(f"Write conflicts with an existing record: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                raise Internal(f"Store operation failed: {exc}") from exc
            except Exception:
                await session.rollback()
                raise

    # =========================================================================
    # Session-level lookups
    # =========================================================================

    @staticmethod
    async def _load_owned(
        session: AsyncSession, model, owner_id: str, row_id: Optional[str], label: str
    ):
        if not is_valid_id(row_id):
            raise NotFound(f"{label} not found")
        result = await session.execute(
            select(model).where(model.id == row_id).where(model.owner_id == owner_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound(f"{label} not found")
        return row

    async def load_space(
        self, session: AsyncSession, owner_id: str, space_id: Optional[str]
    ) -> Space:
        return await self._load_owned(session, Space, owner_id, space_id, "Space")

    async def load_vault(
        self, session: AsyncSession, owner_id: str, vault_id: Optional[str]
    ) -> Vault:
        return await self._load_owned(session, Vault, owner_id, vault_id, "Vault")

    async def load_log(
        self, session: AsyncSession, owner_id: str, log_id: Optional[str]
    ) -> Log:
        return await self._load_owned(session, Log, owner_id, log_id, "Log")

    async def _find_vault(
        self, session: AsyncSession, owner_id: str, vault_id: Optional[str]
    ) -> Optional[Vault]:
        """Like load_vault, but a dangling reference yields None."""
        if not vault_id:
            return None
        try:
            return await self.load_vault(session, owner_id, vault_id)
        except NotFound:
            return None

    async def repath_vault(
        self, session: AsyncSession, owner_id: str, vault: Vault, name: Optional[str] = None
    ) -> Vault:
        """Recompute ``vault.path`` from its parent's current path."""
        if name is not None:
            vault.name = name
        parent = await self._find_vault(session, owner_id, vault.parent_vault_id)
        vault.path = resolve_path(vault.name, parent)
        vault.updated_at = _utc_now_naive()
        return vault

    async def repath_log(
        self, session: AsyncSession, owner_id: str, log: Log, vault: Optional[Vault] = None
    ) -> Log:
        """Recompute ``log.path`` from its vault's current path."""
        if vault is None:
            vault = await self._find_vault(session, owner_id, log.vault_id)
        log.path = resolve_path(log.name, vault)
        log.updated_at = _utc_now_naive()
        return log

    async def collect_descendant_vault_ids(
        self, session: AsyncSession, owner_id: str, root_id: str
    ) -> List[str]:
        """
        All vaults below ``root_id``, found by repeated frontier expansion
        over ``parent_vault_id`` until no new children appear.

        The root itself is not included. Order is breadth-first.
        """
        seen = {root_id}
        descendants: List[str] = []
        frontier = [root_id]
        while frontier:
            result = await session.execute(
                select(Vault.id)
                .where(Vault.owner_id == owner_id)
                .where(Vault.parent_vault_id.in_(frontier))
                .order_by(_fetch_order(Vault))
            )
            next_frontier = []
            for (child_id,) in result.all():
                if child_id in seen:
                    continue
                seen.add(child_id)
                descendants.append(child_id)
                next_frontier.append(child_id)
            frontier = next_frontier
        return descendants

    async def get_stats(self) -> Dict[str, int]:
        """Row counts per table across all owners, used by /health."""
        async with self.session() as session:
            stats: Dict[str, int] = {}
            for label, model in (("spaces", Space), ("vaults", Vault), ("logs", Log)):
                result = await session.execute(select(func.count()).select_from(model))
                stats[label] = int(result.scalar_one())
            return stats

    # =========================================================================
    # Spaces
    # =========================================================================

    async def create_space(self, owner_id: str, name: str) -> Dict[str, Any]:
        async with self.session() as session:
            now = _utc_now_naive()
            space = Space(
                id=new_id(), owner_id=owner_id, name=name, created_at=now, updated_at=now
            )
            session.add(space)
            await session.flush()
            return space_to_dict(space)

    async def list_spaces(self, owner_id: str) -> List[Dict[str, Any]]:
        async with self.session() as session:
            result = await session.execute(
                select(Space)
                .where(Space.owner_id == owner_id)
                .order_by(_fetch_order(Space))
            )
            return [space_to_dict(row) for row in result.scalars().all()]

    async def get_space(self, owner_id: str, space_id: str) -> Dict[str, Any]:
        async with self.session() as session:
            return space_to_dict(await self.load_space(session, owner_id, space_id))

    async def update_space(self, owner_id: str, space_id: str, name: str) -> Dict[str, Any]:
        async with self.session() as session:
            space = await self.load_space(session, owner_id, space_id)
            space.name = name
            space.updated_at = _utc_now_naive()
            await session.flush()
            return space_to_dict(space)

    # =========================================================================
    # Vaults
    # =========================================================================

    async def create_vault(
        self,
        owner_id: str,
        space_id: Optional[str],
        name: str,
        parent_vault_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a vault in a space, optionally under a parent vault.

        Raises:
            InvalidReference: spaceId (or a given parentId) is absent or malformed
            NotFound: the space, or the parent within that space, does not exist
        """
        space_id = _require_reference(space_id, "spaceId")
        if parent_vault_id is not None and parent_vault_id != "":
            parent_vault_id = _require_reference(parent_vault_id, "parentId")
        else:
            parent_vault_id = None

        async with self.session() as session:
            await self.load_space(session, owner_id, space_id)
            parent = None
            if parent_vault_id is not None:
                try:
                    parent = await self.load_vault(session, owner_id, parent_vault_id)
                except NotFound:
                    raise NotFound("Parent vault not found") from None
                if parent.space_id != space_id:
                    raise NotFound("Parent vault not found")

            now = _utc_now_naive()
            vault = Vault(
                id=new_id(),
                space_id=space_id,
                owner_id=owner_id,
                name=name,
                path=resolve_path(name, parent),
                parent_vault_id=parent_vault_id,
                created_at=now,
                updated_at=now,
            )
            session.add(vault)
            await session.flush()
            return vault_to_dict(vault)

    async def list_vaults(
        self, owner_id: str, space_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        async with self.session() as session:
            query = select(Vault).where(Vault.owner_id == owner_id)
            if space_id is not None:
                query = query.where(Vault.space_id == space_id)
            result = await session.execute(query.order_by(_fetch_order(Vault)))
            return [vault_to_dict(row) for row in result.scalars().all()]

    async def get_vault(self, owner_id: str, vault_id: str) -> Dict[str, Any]:
        async with self.session() as session:
            return vault_to_dict(await self.load_vault(session, owner_id, vault_id))

    async def update_vault(self, owner_id: str, vault_id: str, name: str) -> Dict[str, Any]:
        """Rename a vault. Only this vault's path is recomputed."""
        async with self.session() as session:
            vault = await self.load_vault(session, owner_id, vault_id)
            await self.repath_vault(session, owner_id, vault, name)
            await session.flush()
            return vault_to_dict(vault)

    # =========================================================================
    # Logs
    # =========================================================================

    async def create_log(
        self,
        owner_id: str,
        space_id: Optional[str],
        vault_id: Optional[str],
        name: str,
        content: str = "",
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a log (code file) inside a vault.

        Raises:
            InvalidReference: spaceId or vaultId is absent or malformed
            NotFound: the vault does not exist in that space
        """
        space_id = _require_reference(space_id, "spaceId")
        vault_id = _require_reference(vault_id, "vaultId")

        async with self.session() as session:
            vault = await self.load_vault(session, owner_id, vault_id)
            if vault.space_id != space_id:
                raise NotFound("Vault not found")

            now = _utc_now_naive()
            log = Log(
                id=new_id(),
                space_id=space_id,
                vault_id=vault_id,
                owner_id=owner_id,
                name=name,
                path=resolve_path(name, vault),
                language=language or infer_language(name),
                content=content or "",
                created_at=now,
                updated_at=now,
            )
            session.add(log)
            await session.flush()
            return log_to_dict(log)

    async def list_logs(
        self,
        owner_id: str,
        space_id: Optional[str] = None,
        vault_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        async with self.session() as session:
            query = select(Log).where(Log.owner_id == owner_id)
            if space_id is not None:
                query = query.where(Log.space_id == space_id)
            if vault_id is not None:
                query = query.where(Log.vault_id == vault_id)
            result = await session.execute(query.order_by(_fetch_order(Log)))
            return [log_to_dict(row) for row in result.scalars().all()]

    async def get_log(self, owner_id: str, log_id: str) -> Dict[str, Any]:
        async with self.session() as session:
            return log_to_dict(await self.load_log(session, owner_id, log_id))

    async def update_log(
        self,
        owner_id: str,
        log_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update a log's name, content and/or language.

        A rename recomputes this log's path and re-infers its language unless
        a language is given in the same call. Siblings and the vault are
        never touched.
        """
        async with self.session() as session:
            log = await self.load_log(session, owner_id, log_id)
            if name:
                log.name = name
                await self.repath_log(session, owner_id, log)
                if not language:
                    log.language = infer_language(name)
            if language:
                log.language = language
            if content is not None:
                log.content = content
            log.updated_at = _utc_now_naive()
            await session.flush()
            return log_to_dict(log)

    async def delete_log(self, owner_id: str, log_id: str) -> Dict[str, Any]:
        if not is_valid_id(log_id):
            raise NotFound("Log not found")
        async with self.session() as session:
            result = await session.execute(
                delete(Log).where(Log.id == log_id).where(Log.owner_id == owner_id)
            )
            if result.rowcount == 0:
                raise NotFound("Log not found")
            return {"deleted_log_id": log_id}
