"""
ai/gemini.py - Minimal Gemini REST client.

Only generateContent is used. Structured answers are requested with a
responseSchema and application/json MIME type; plain-text answers (post-
mortems, advice) omit both.
"""

import json
from typing import Any, Optional

import httpx

from core.constants import DEFAULT_SCORER_TIMEOUT_SECONDS
from core.exceptions import ErrorCode, ScoringError
from core.logging import get_logger

logger = get_logger("flarb.gemini")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiClient:
    """
    Usage:
        client = GeminiClient(api_key, model="gemini-2.5-flash")
        text = await client.generate("Say hi")
        data = await client.generate_json(prompt, schema)
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = DEFAULT_SCORER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def endpoint(self) -> str:
        return f"{GEMINI_API_BASE}/models/{self.model}:generateContent"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        schema: Optional[dict[str, Any]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Return the first candidate's text.

        Raises:
            ScoringError: missing key, transport error, timeout or empty answer
        """
        if not self.api_key:
            raise ScoringError(
                code=ErrorCode.SCORER_UNAVAILABLE,
                message="GEMINI_API_KEY is not set",
            )

        generation_config: dict[str, Any] = {}
        if schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = schema
        if temperature is not None:
            generation_config["temperature"] = temperature

        body: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if generation_config:
            body["generationConfig"] = generation_config

        client = await self._get_client()
        try:
            resp = await client.post(
                self.endpoint,
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise ScoringError(
                code=ErrorCode.SCORER_TIMEOUT,
                message="Gemini request timed out",
                details={"model": self.model},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ScoringError(
                code=ErrorCode.SCORER_ERROR,
                message=f"Gemini request failed: {e}",
                details={"model": self.model},
            ) from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ScoringError(
                code=ErrorCode.SCORER_MALFORMED,
                message="Gemini response has no candidate text",
                details={"model": self.model, "response": str(data)[:200]},
            ) from e

    async def generate_json(
        self,
        prompt: str,
        schema: dict[str, Any],
        temperature: Optional[float] = None,
    ) -> Any:
        """
        Raises:
            ScoringError: as generate(), or SCORER_MALFORMED on invalid JSON
        """
        text = await self.generate(prompt, schema=schema, temperature=temperature)
        try:
            return json.loads(text)
        except ValueError as e:
            raise ScoringError(
                code=ErrorCode.SCORER_MALFORMED,
                message=f"Gemini returned invalid JSON: {e}",
                details={"model": self.model, "text": text[:200]},
            ) from e
