"""
Code-execution proxy: forwards source code to a Piston instance.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from db.languages import piston_filename, piston_language
from errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class PistonClient:
    def __init__(
        self,
        api_url: str,
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._transport = transport

    @staticmethod
    def build_payload(language: str, code: str) -> Dict[str, Any]:
        return {
            "language": piston_language(language),
            "version": "*",
            "files": [{"name": piston_filename(language), "content": code}],
            "stdin": "",
            "args": [],
        }

    async def execute(self, language: str, code: str) -> Dict[str, Any]:
        """
        Run ``code`` and return ``{stdout, stderr, exitCode, output}``.

        Raises:
            ProviderUnavailable: Piston could not be reached or answered with
                an error status or an unreadable body
        """
        payload = self.build_payload(language, code)
        url = f"{self.api_url}/execute"
        try:
            timeout = httpx.Timeout(self.timeout_sec)
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                parsed = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Piston returned status %s for %s", exc.response.status_code, payload["language"]
            )
            raise ProviderUnavailable(
                f"Code execution service returned status {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Piston request failed: %s", exc)
            raise ProviderUnavailable("Failed to execute code") from exc

        run = parsed.get("run") if isinstance(parsed, dict) else None
        if not isinstance(run, dict):
            raise ProviderUnavailable("Code execution service returned no run result")

        exit_code = run.get("code")
        return {
            "stdout": str(run.get("stdout") or ""),
            "stderr": str(run.get("stderr") or ""),
            "exitCode": int(exit_code) if isinstance(exit_code, (int, float)) else None,
            "output": str(run.get("output") or ""),
        }
