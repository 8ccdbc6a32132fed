"""
Tree view of a space: vaults nested by parent pointer, logs as leaves.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .sqlite_client import SQLiteClient


@dataclass
class TreeNode:
    id: str
    name: str
    type: str
    path: str
    language: Optional[str] = None
    children: List["TreeNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "path": self.path,
            "children": [child.to_dict() for child in self.children],
        }
        if self.language is not None:
            payload["language"] = self.language
        return payload


def assemble_tree(
    vaults: Iterable[Mapping[str, Any]], logs: Iterable[Mapping[str, Any]]
) -> List[TreeNode]:
    """
    Build the forest of root vaults from flat vault and log records.

    A vault whose parent is not among ``vaults`` is treated as a root. A log
    whose vault is not among ``vaults`` cannot be placed and is left out.
    Within a node, child vaults come first, then logs, each in input order.
    """
    vaults = list(vaults)
    nodes: Dict[str, TreeNode] = {}
    for vault in vaults:
        nodes[vault["id"]] = TreeNode(
            id=vault["id"], name=vault["name"], type="vault", path=vault["path"]
        )

    roots: List[TreeNode] = []
    for vault in vaults:
        node = nodes[vault["id"]]
        parent_id = vault.get("parentVaultId")
        parent = nodes.get(parent_id) if parent_id else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)

    for log in logs:
        holder = nodes.get(log.get("vaultId"))
        if holder is None:
            continue
        holder.children.append(
            TreeNode(
                id=log["id"],
                name=log["name"],
                type="log",
                path=log["path"],
                language=log.get("language"),
            )
        )
    return roots


class TreeBuilder:
    """Read-only: fetches a space's vaults and logs and nests them."""

    def __init__(self, client: SQLiteClient) -> None:
        self.client = client

    async def build_tree(self, owner_id: str, space_id: str) -> List[TreeNode]:
        vaults = await self.client.list_vaults(owner_id, space_id=space_id)
        if not vaults:
            return []
        logs = await self.client.list_logs(owner_id, space_id=space_id)
        return assemble_tree(vaults, logs)
