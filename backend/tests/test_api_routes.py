import asyncio
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from config import Settings
from integrations.piston_client import PistonClient
from main import create_app


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {"database_url": f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"}
    values.update(overrides)
    return Settings(**values)


def _build_client(tmp_path: Path, **overrides) -> TestClient:
    return TestClient(create_app(_settings(tmp_path, **overrides)))


def _seed(client: TestClient) -> dict:
    space = client.post("/spaces", json={"name": "Project"}).json()
    root = client.post("/vaults", json={"spaceId": space["id"], "name": "root"}).json()
    child = client.post(
        "/vaults", json={"spaceId": space["id"], "name": "child", "parentId": root["id"]}
    ).json()
    log = client.post(
        "/logs",
        json={"spaceId": space["id"], "vaultId": child["id"], "name": "main.py", "code": "print(1)"},
    ).json()
    return {"space": space, "root": root, "child": child, "log": log}


def test_root_and_health(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        assert client.get("/").json()["message"] == "CodeFlow API"
        health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["store"] == {"spaces": 0, "vaults": 0, "logs": 0}
    assert set(health["runtime"]["rate_limits"]) == {"openai", "gemini"}


def test_workspace_crud_flow(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        created = client.post("/spaces", json={"name": "Project"})
        assert created.status_code == 201
        space_id = created.json()["id"]

        vault = client.post("/vaults", json={"spaceId": space_id, "name": "src"})
        assert vault.status_code == 201
        assert vault.json()["path"] == "src"

        log = client.post(
            "/logs",
            json={"spaceId": space_id, "vaultId": vault.json()["id"], "name": "lib.rs"},
        )
        assert log.status_code == 201
        assert log.json()["language"] == "rust"
        assert log.json()["path"] == "src/lib.rs"

        updated = client.put(f"/logs/{log.json()['id']}", json={"code": "fn x() {}"})
        assert updated.status_code == 200
        assert updated.json()["content"] == "fn x() {}"

        listed = client.get("/logs", params={"vaultId": vault.json()["id"]})
        assert [item["id"] for item in listed.json()] == [log.json()["id"]]

        renamed = client.put(f"/spaces/{space_id}", json={"name": "Renamed"})
        assert renamed.json()["name"] == "Renamed"

        deleted = client.delete(f"/logs/{log.json()['id']}")
        assert deleted.status_code == 200
        assert deleted.json() == {"message": "Log deleted"}


def test_vault_list_requires_space_id(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        missing = client.get("/vaults")
        malformed = client.get("/vaults", params={"spaceId": "nope"})
        empty = client.get("/vaults", params={"spaceId": "a" * 32})

    assert missing.status_code == 400
    assert missing.json()["code"] == "INVALID_INPUT"
    assert malformed.status_code == 400
    assert empty.status_code == 200
    assert empty.json() == []


def test_error_envelope_for_bad_references(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        no_space = client.post("/vaults", json={"name": "src"})
        unknown_space = client.post("/vaults", json={"spaceId": "b" * 32, "name": "src"})
        missing_name = client.post("/spaces", json={})
        unknown_log = client.get("/logs/not-a-real-id")

    assert no_space.status_code == 400
    assert no_space.json()["code"] == "INVALID_REFERENCE"
    assert unknown_space.status_code == 404
    assert unknown_space.json() == {"code": "NOT_FOUND", "message": "Space not found"}
    assert missing_name.status_code == 400
    assert missing_name.json()["code"] == "INVALID_INPUT"
    assert unknown_log.status_code == 404


def test_tree_endpoint(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        seeded = _seed(client)
        tree = client.get("/tree", params={"spaceId": seeded["space"]["id"]})
        unknown = client.get("/tree", params={"spaceId": "c" * 32})

    assert tree.status_code == 200
    forest = tree.json()
    assert len(forest) == 1
    assert forest[0]["id"] == seeded["root"]["id"]
    child = forest[0]["children"][0]
    assert child["type"] == "vault"
    assert child["children"][0]["path"] == "root/child/main.py"
    assert child["children"][0]["language"] == "python"
    assert unknown.json() == []


def test_delete_space_cascades(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        seeded = _seed(client)
        space_id = seeded["space"]["id"]

        deleted = client.delete(f"/spaces/{space_id}")
        vaults = client.get("/vaults", params={"spaceId": space_id})
        logs = client.get("/logs", params={"spaceId": space_id})
        again = client.delete(f"/spaces/{space_id}")

    assert deleted.status_code == 200
    assert deleted.json()["vaultsDeleted"] == 2
    assert deleted.json()["logsDeleted"] == 1
    assert vaults.json() == []
    assert logs.json() == []
    assert again.status_code == 404


def test_delete_vault_cascades(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        seeded = _seed(client)
        deleted = client.delete(f"/vaults/{seeded['root']['id']}")
        child = client.get(f"/vaults/{seeded['child']['id']}")
        log = client.get(f"/logs/{seeded['log']['id']}")

    assert deleted.json()["message"] == "Vault and all its contents deleted"
    assert deleted.json()["vaultsDeleted"] == 2
    assert child.status_code == 404
    assert log.status_code == 404


def test_vault_rename_repaths_descendants_when_enabled(tmp_path: Path) -> None:
    with _build_client(tmp_path, repath_descendants_on_rename=True) as client:
        seeded = _seed(client)
        renamed = client.put(f"/vaults/{seeded['root']['id']}", json={"name": "top"})
        log = client.get(f"/logs/{seeded['log']['id']}")

    assert renamed.json()["path"] == "top"
    assert log.json()["path"] == "top/child/main.py"


def test_writes_require_admin_token_when_configured(tmp_path: Path) -> None:
    with _build_client(tmp_path, admin_token="s3cret") as client:
        denied = client.post("/spaces", json={"name": "Project"})
        wrong = client.post(
            "/spaces", json={"name": "Project"}, headers={"Authorization": "Bearer nope"}
        )
        bearer = client.post(
            "/spaces", json={"name": "Project"}, headers={"Authorization": "Bearer s3cret"}
        )
        header = client.post(
            "/spaces", json={"name": "Other"}, headers={"X-Admin-Token": "s3cret"}
        )
        reads = client.get("/spaces")

    assert denied.status_code == 401
    assert denied.json()["code"] == "UNAUTHORIZED"
    assert denied.headers["WWW-Authenticate"] == "Bearer"
    assert wrong.status_code == 401
    assert bearer.status_code == 201
    assert header.status_code == 201
    assert reads.status_code == 200
    assert len(reads.json()) == 2


def test_records_belong_to_configured_owner(tmp_path: Path) -> None:
    with _build_client(tmp_path, owner_id="alice") as client:
        space = client.post("/spaces", json={"name": "Project"}).json()
    assert space["ownerId"] == "alice"

    with _build_client(tmp_path, owner_id="bob") as client:
        assert client.get("/spaces").json() == []
        assert client.get(f"/spaces/{space['id']}").status_code == 404


def test_store_timeout_maps_to_internal_error(tmp_path: Path) -> None:
    with _build_client(tmp_path, store_timeout_sec=0.05) as client:
        services = client.app.state.services

        async def slow_list_spaces(owner_id: str):
            await asyncio.sleep(1)
            return []

        services.store.list_spaces = slow_list_spaces
        response = client.get("/spaces")

    assert response.status_code == 500
    assert response.json()["code"] == "STORE_TIMEOUT"


def test_run_proxies_to_piston(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"run": {"stdout": "3\n", "stderr": "", "code": 0, "output": "3\n"}}
        )

    with _build_client(tmp_path) as client:
        client.app.state.services.piston = PistonClient(
            "https://piston.test", transport=httpx.MockTransport(handler)
        )
        response = client.post("/run", json={"language": "python", "code": "print(1 + 2)"})
        empty = client.post("/run", json={"language": "python", "code": ""})

    assert response.status_code == 200
    assert response.json() == {"stdout": "3\n", "stderr": "", "exitCode": 0, "output": "3\n"}
    assert empty.status_code == 400


def test_generate_without_providers_is_bad_gateway(tmp_path: Path) -> None:
    with _build_client(tmp_path, openai_api_key="", gemini_api_key="") as client:
        response = client.post("/generate", json={"prompt": "fizzbuzz"})

    assert response.status_code == 502
    assert response.json()["code"] == "PROVIDER_UNAVAILABLE"


def test_generate_rate_limited(tmp_path: Path) -> None:
    with _build_client(tmp_path, openai_rate_limit=0, gemini_rate_limit=0) as client:
        response = client.post("/generate", json={"prompt": "fizzbuzz"})

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMITED"


@pytest.mark.parametrize("method", ["post", "put", "delete"])
def test_auth_gate_blocks_every_write_method(tmp_path: Path, method: str) -> None:
    with _build_client(tmp_path, admin_token="s3cret") as client:
        target = "/spaces" if method == "post" else f"/spaces/{'d' * 32}"
        kwargs = {} if method == "delete" else {"json": {"name": "x"}}
        response = getattr(client, method)(target, **kwargs)
    assert response.status_code == 401


def test_log_update_rejects_empty_name(tmp_path: Path) -> None:
    with _build_client(tmp_path) as client:
        seeded = _seed(client)
        response = client.put(f"/logs/{seeded['log']['id']}", json={"name": ""})
        unchanged = client.get(f"/logs/{seeded['log']['id']}")

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"
    assert unchanged.json()["name"] == "main.py"
