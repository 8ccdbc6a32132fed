"""
Cascade engine: delete and rename propagation across spaces, vaults and logs.

Each cascade is an ordered list of idempotent steps (children before parent)
executed inside one SQLite transaction. If the root is missing, or any step
fails, the transaction rolls back and nothing is deleted; running the same
delete again is always safe.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import delete, select

from errors import NotFound
from .paths import resolve_path
from .sqlite_client import (
    Log,
    SQLiteClient,
    Space,
    Vault,
    _fetch_order,
    _utc_now_naive,
    is_valid_id,
    vault_to_dict,
)

logger = logging.getLogger(__name__)


class CascadeEngine:
    """Deletes and repaths subtrees on behalf of the API layer."""

    def __init__(self, client: SQLiteClient, repath_descendants: bool = False) -> None:
        self.client = client
        self.repath_descendants = repath_descendants

    async def delete_space(self, owner_id: str, space_id: str) -> Dict[str, Any]:
        """
        Delete a space with every vault and log in it.

        Order: logs, vaults, then the space itself.

        Raises:
            NotFound: the space does not exist for this owner
        """
        if not is_valid_id(space_id):
            raise NotFound("Space not found")

        async with self.client.session() as session:
            logs_result = await session.execute(
                delete(Log).where(Log.space_id == space_id).where(Log.owner_id == owner_id)
            )
            vaults_result = await session.execute(
                delete(Vault)
                .where(Vault.space_id == space_id)
                .where(Vault.owner_id == owner_id)
            )
            space_result = await session.execute(
                delete(Space).where(Space.id == space_id).where(Space.owner_id == owner_id)
            )
            if space_result.rowcount == 0:
                raise NotFound("Space not found")

            summary = {
                "deleted_space_id": space_id,
                "vaults_deleted": int(vaults_result.rowcount or 0),
                "logs_deleted": int(logs_result.rowcount or 0),
            }
        logger.info(
            "Deleted space %s (%d vaults, %d logs)",
            space_id,
            summary["vaults_deleted"],
            summary["logs_deleted"],
        )
        return summary

    async def delete_vault(self, owner_id: str, vault_id: str) -> Dict[str, Any]:
        """
        Delete a vault, all of its descendant vaults at any depth, and every
        log held by any of them.

        Raises:
            NotFound: the vault does not exist for this owner
        """
        if not is_valid_id(vault_id):
            raise NotFound("Vault not found")

        async with self.client.session() as session:
            descendants = await self.client.collect_descendant_vault_ids(
                session, owner_id, vault_id
            )
            subtree = [vault_id, *descendants]

            logs_result = await session.execute(
                delete(Log).where(Log.vault_id.in_(subtree)).where(Log.owner_id == owner_id)
            )
            if descendants:
                await session.execute(
                    delete(Vault)
                    .where(Vault.id.in_(descendants))
                    .where(Vault.owner_id == owner_id)
                )
            root_result = await session.execute(
                delete(Vault).where(Vault.id == vault_id).where(Vault.owner_id == owner_id)
            )
            if root_result.rowcount == 0:
                raise NotFound("Vault not found")

            summary = {
                "deleted_vault_id": vault_id,
                "descendant_vaults_deleted": len(descendants),
                "logs_deleted": int(logs_result.rowcount or 0),
            }
        logger.info(
            "Deleted vault %s (%d descendant vaults, %d logs)",
            vault_id,
            summary["descendant_vaults_deleted"],
            summary["logs_deleted"],
        )
        return summary

    async def rename_vault(self, owner_id: str, vault_id: str, name: str) -> Dict[str, Any]:
        """
        Rename a vault.

        With ``repath_descendants`` off only the vault's own path changes.
        With it on, every descendant vault (top-down) and every log in the
        subtree is repathed in the same transaction.
        """
        if not self.repath_descendants:
            return await self.client.update_vault(owner_id, vault_id, name)

        async with self.client.session() as session:
            vault = await self.client.load_vault(session, owner_id, vault_id)
            await self.client.repath_vault(session, owner_id, vault, name)
            await session.flush()

            # breadth-first, so every parent is repathed before its children
            descendants = await self.client.collect_descendant_vault_ids(
                session, owner_id, vault_id
            )
            subtree = [vault_id, *descendants]
            vaults_by_id = {vault.id: vault}
            if descendants:
                result = await session.execute(
                    select(Vault)
                    .where(Vault.id.in_(descendants))
                    .where(Vault.owner_id == owner_id)
                )
                for row in result.scalars().all():
                    vaults_by_id[row.id] = row
                now = _utc_now_naive()
                for child_id in descendants:
                    child = vaults_by_id[child_id]
                    child.path = resolve_path(child.name, vaults_by_id[child.parent_vault_id])
                    child.updated_at = now

            logs_result = await session.execute(
                select(Log)
                .where(Log.vault_id.in_(subtree))
                .where(Log.owner_id == owner_id)
                .order_by(_fetch_order(Log))
            )
            logs: List[Log] = list(logs_result.scalars().all())
            for log in logs:
                await self.client.repath_log(
                    session, owner_id, log, vaults_by_id.get(log.vault_id)
                )
            await session.flush()
            payload = vault_to_dict(vault)

        logger.info(
            "Renamed vault %s; repathed %d descendant vaults and %d logs",
            vault_id,
            len(descendants),
            len(logs),
        )
        return payload
