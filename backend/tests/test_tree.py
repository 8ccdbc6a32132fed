from pathlib import Path

import pytest

from db.sqlite_client import SQLiteClient
from db.tree import TreeBuilder, assemble_tree

OWNER = "admin"


def _sqlite_url(db_path: Path) -> str:
    return f"sqlite+aiosqlite:///{db_path}"


def _vault(vault_id: str, name: str, parent_id=None) -> dict:
    return {"id": vault_id, "name": name, "path": name, "parentVaultId": parent_id}


def _log(log_id: str, name: str, vault_id: str) -> dict:
    return {"id": log_id, "name": name, "path": name, "vaultId": vault_id, "language": "python"}


def test_assemble_tree_empty_input() -> None:
    assert assemble_tree([], []) == []


def test_assemble_tree_orders_vaults_before_logs() -> None:
    vaults = [_vault("r", "root"), _vault("c", "child", "r")]
    logs = [_log("l1", "a.py", "r"), _log("l2", "b.py", "r"), _log("l3", "c.py", "c")]

    forest = assemble_tree(vaults, logs)

    assert len(forest) == 1
    root = forest[0]
    assert [node.id for node in root.children] == ["c", "l1", "l2"]
    assert [node.type for node in root.children] == ["vault", "log", "log"]
    assert [node.id for node in root.children[0].children] == ["l3"]


def test_assemble_tree_dangling_parent_becomes_root_and_orphan_log_is_dropped() -> None:
    vaults = [_vault("a", "a"), _vault("b", "b", "missing")]
    logs = [_log("l1", "x.py", "gone")]

    forest = assemble_tree(vaults, logs)

    assert [node.id for node in forest] == ["a", "b"]
    assert all(node.children == [] for node in forest)


def test_tree_node_serialization_omits_language_on_vaults() -> None:
    forest = assemble_tree([_vault("r", "root")], [_log("l1", "a.py", "r")])
    payload = forest[0].to_dict()

    assert "language" not in payload
    assert payload["type"] == "vault"
    assert payload["children"][0]["language"] == "python"
    assert payload["children"][0]["children"] == []


@pytest.mark.asyncio
async def test_build_tree_from_store(tmp_path: Path) -> None:
    client = SQLiteClient(_sqlite_url(tmp_path / "tree.db"))
    await client.init_db()
    try:
        space = await client.create_space(OWNER, "Project")
        root = await client.create_vault(OWNER, space["id"], "root")
        await client.create_log(OWNER, space["id"], root["id"], "a.py")
        await client.create_log(OWNER, space["id"], root["id"], "b.py")
        child = await client.create_vault(OWNER, space["id"], "child", root["id"])
        await client.create_log(OWNER, space["id"], child["id"], "c.py")

        forest = await TreeBuilder(client).build_tree(OWNER, space["id"])

        assert len(forest) == 1
        assert len(forest[0].children) == 3
        assert forest[0].children[0].id == child["id"]
        assert len(forest[0].children[0].children) == 1
        assert forest[0].children[0].children[0].path == "root/child/c.py"

        empty_space = await client.create_space(OWNER, "Empty")
        assert await TreeBuilder(client).build_tree(OWNER, empty_space["id"]) == []
        assert await TreeBuilder(client).build_tree("intruder", space["id"]) == []
    finally:
        await client.close()
