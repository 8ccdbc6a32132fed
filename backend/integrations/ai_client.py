"""
AI generation proxy.

Code is requested from OpenAI first and from Gemini as a fallback. Each
provider sits behind its own rolling-window limiter; a provider whose
limiter refuses the request is skipped, a provider without an API key
counts as failed. The answer is post-processed down to bare source code.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config import Settings
from errors import ProviderUnavailable, RateLimited
from runtime_state import RollingWindowLimiter

logger = logging.getLogger(__name__)

_CODE_FENCE_PATTERN = re.compile(r"```[\w+-]*\n([\s\S]*?)```")
_PROSE_PREFIXES = ("Here is", "Here's", "Explanation:", "This code")

GEMINI_TEMPERATURE = 0.2
GEMINI_MAX_OUTPUT_TOKENS = 800


class ProviderError(RuntimeError):
    """One provider failed to produce an answer."""


def build_language_context(language: Optional[str], filename: Optional[str]) -> str:
    language = (language or "").strip()
    filename = (filename or "").strip()
    if language and filename:
        return f"{language} (file: {filename})"
    if filename:
        return f"file: {filename}"
    return language


def build_system_prompt(language_context: str) -> str:
    prompt = (
        "You are a code generator.\n"
        "Output ONLY the final source code for the requested task.\n"
        "Do NOT include:\n"
        "- Markdown code fences (no backticks)\n"
        "- Explanations or prose\n"
        "- Comments describing the code (unless the user specifically asks for comments)\n"
        "- Leading or trailing text\n"
        "- HTML tags like <code> or </code>\n"
        "\n"
        "Return plain source code text only."
    )
    if language_context:
        prompt += f"\nTarget: {language_context}"
    return prompt


def build_user_prompt(request: str, language_context: str) -> str:
    prompt = request + "\n\nReturn only code. No markdown. No backticks. No explanations."
    if language_context:
        prompt += f"\nTarget language: {language_context}."
    return prompt


def extract_code(text: str) -> str:
    """
    Strip a model answer down to source code.

    The first fenced block wins if there is one. Otherwise leading blank
    lines, prose openers and stray fences are dropped until the first line
    that looks like code.
    """
    match = _CODE_FENCE_PATTERN.search(text or "")
    if match:
        return match.group(1).strip()

    kept: List[str] = []
    in_code = False
    for line in (text or "").split("\n"):
        stripped = line.strip()
        if not in_code:
            if not stripped or stripped == "```" or stripped.startswith(_PROSE_PREFIXES):
                continue
            in_code = True
        kept.append(line)
    return "\n".join(kept).strip()


class AIClient:
    def __init__(
        self,
        settings: Settings,
        limiters: Dict[str, RollingWindowLimiter],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.limiters = limiters
        self._transport = transport

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        request_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        request_headers.update(headers or {})
        try:
            timeout = httpx.Timeout(self.settings.ai_timeout_sec)
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(
                    url, json=payload, headers=request_headers, params=params
                )
                response.raise_for_status()
                parsed = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"status {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(parsed, dict):
            raise ProviderError("unexpected response body")
        return parsed

    async def _generate_openai(self, system_prompt: str, user_prompt: str) -> str:
        api_key = self.settings.openai_api_key
        if not api_key:
            raise ProviderError("OPENAI_API_KEY not set")
        payload = {
            "model": self.settings.openai_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.settings.openai_temperature,
            "max_tokens": self.settings.openai_max_tokens,
            "top_p": 1.0,
            "stop": ["```", "<code>", "</code>"],
        }
        data = await self._post_json(
            f"{self.settings.openai_base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderError("no response from OpenAI")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("empty response from OpenAI")
        return content

    async def _generate_gemini(self, system_prompt: str, user_prompt: str) -> str:
        api_key = self.settings.gemini_api_key
        if not api_key:
            raise ProviderError("GEMINI_API_KEY not set")
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": GEMINI_TEMPERATURE,
                "maxOutputTokens": GEMINI_MAX_OUTPUT_TOKENS,
                "topP": 1.0,
            },
        }
        data = await self._post_json(
            f"{self.settings.gemini_base_url}/models/"
            f"{self.settings.gemini_model}:generateContent",
            payload,
            params={"key": api_key},
        )
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise ProviderError("no response from Gemini")
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list) or not parts:
            raise ProviderError("no response from Gemini")
        texts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        content = "".join(text for text in texts if isinstance(text, str))
        if not content.strip():
            raise ProviderError("empty response from Gemini")
        return content

    async def generate(
        self,
        prompt: str,
        language: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Generate code for ``prompt``; returns ``(code, provider)``.

        Raises:
            RateLimited: every provider's limiter refused the request
            ProviderUnavailable: every admitted provider failed
        """
        context = build_language_context(language, filename)
        system_prompt = build_system_prompt(context)
        user_prompt = build_user_prompt(prompt, context)

        providers = (
            ("openai", self._generate_openai),
            ("gemini", self._generate_gemini),
        )
        attempted = False
        failures: List[str] = []
        for name, generate in providers:
            limiter = self.limiters.get(name)
            if limiter is not None and not await limiter.allow():
                logger.info("Provider %s rate limited, skipping", name)
                continue
            attempted = True
            try:
                raw = await generate(system_prompt, user_prompt)
            except ProviderError as exc:
                logger.warning("Provider %s failed: %s", name, exc)
                failures.append(f"{name}: {exc}")
                continue
            return extract_code(raw), name

        if not attempted:
            raise RateLimited("All AI providers are rate limited, try again later")
        raise ProviderUnavailable(
            "No AI provider available. Configure OPENAI_API_KEY or GEMINI_API_KEY.",
            details={"failures": failures},
        )
