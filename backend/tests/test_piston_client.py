import json

import httpx
import pytest

from errors import ProviderUnavailable
from integrations.piston_client import PistonClient


def test_build_payload_uses_canonical_file_name() -> None:
    payload = PistonClient.build_payload("java", "class Main {}")
    assert payload == {
        "language": "java",
        "version": "*",
        "files": [{"name": "Main.java", "content": "class Main {}"}],
        "stdin": "",
        "args": [],
    }


@pytest.mark.asyncio
async def test_execute_maps_run_result() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "language": "python",
                "version": "3.10.0",
                "run": {"stdout": "hi\n", "stderr": "", "code": 0, "output": "hi\n"},
            },
        )

    client = PistonClient(
        "https://piston.test/api/v2/", transport=httpx.MockTransport(handler)
    )
    result = await client.execute("python", "print('hi')")

    assert captured["url"] == "https://piston.test/api/v2/execute"
    assert captured["body"]["files"][0]["name"] == "main.py"
    assert result == {"stdout": "hi\n", "stderr": "", "exitCode": 0, "output": "hi\n"}


@pytest.mark.asyncio
async def test_execute_non_2xx_is_provider_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "runtime is unknown"})

    client = PistonClient("https://piston.test", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailable, match="status 400"):
        await client.execute("cobol", "DISPLAY 'HI'")


@pytest.mark.asyncio
async def test_execute_transport_failure_is_provider_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = PistonClient("https://piston.test", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderUnavailable):
        await client.execute("python", "while True: pass")
