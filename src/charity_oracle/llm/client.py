"""
OpenAI-compatible chat-completions client.

Used by the text-analysis and image-analysis stages. Works against any
endpoint that speaks the ``/chat/completions`` wire format.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from charity_oracle.config.defaults import (
    DEFAULT_OPENAI_BASE_URL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
    LLM_VISION_MAX_TOKENS,
)
from charity_oracle.errors import (
    CollaboratorRejectedError,
    ConfigurationError,
    MalformedResponseError,
    TransientCollaboratorError,
)
from charity_oracle.llm.circuit_breaker import CircuitBreaker
from charity_oracle.llm.parsing import extract_json_object

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (408, 409, 429, 500, 502, 503, 504)


@dataclass
class ChatResponse:
    """Raw completion text plus token usage."""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class ChatClient:
    """Thin async client for chat completions.

    The httpx client is injected so tests can pass ``httpx.MockTransport``
    and the oracle can share one connection pool across workers.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = LLM_TIMEOUT_SECONDS,
        breaker: Optional[CircuitBreaker] = None,
    ):
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY missing. Set it in .env or environment.")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker("llm")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, payload: Dict[str, Any]) -> ChatResponse:
        url = f"{self.base_url}/chat/completions"
        try:
            resp = await self._client.post(
                url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientCollaboratorError(f"LLM request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientCollaboratorError(f"LLM endpoint unreachable: {e}") from e

        if resp.status_code in (401, 403):
            raise ConfigurationError(f"LLM endpoint rejected credentials ({resp.status_code})")
        if resp.status_code in RETRYABLE_STATUS_CODES:
            raise TransientCollaboratorError(f"LLM endpoint returned {resp.status_code}")
        if resp.status_code >= 400:
            try:
                err_msg = resp.json().get("error", {}).get("message", resp.text[:200])
            except ValueError:
                err_msg = resp.text[:200]
            raise CollaboratorRejectedError(
                f"LLM API {resp.status_code}: {err_msg}", status_code=resp.status_code
            )

        try:
            data = resp.json()
            choice = data["choices"][0]
            content = choice.get("message", {}).get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(f"unexpected completion shape: {e}", raw=resp.text[:500])

        usage = data.get("usage") or {}
        return ChatResponse(
            content=content.strip(),
            model=data.get("model", payload["model"]),
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> ChatResponse:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = await self.breaker.call(self._post, payload)
        logger.debug(
            f"LLM call model={response.model} in={response.input_tokens} out={response.output_tokens}"
        )
        return response

    async def complete_json(self, system: str, prompt: str, model: str) -> Dict[str, Any]:
        """Ask for a JSON object and return it parsed."""
        response = await self.complete(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            model=model,
            json_mode=True,
        )
        return extract_json_object(response.content)

    async def complete_vision_json(
        self,
        prompt: str,
        image_urls: Sequence[str],
        model: str,
        max_tokens: int = LLM_VISION_MAX_TOKENS,
    ) -> Dict[str, Any]:
        """Send a prompt with image attachments and return the JSON answer."""
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        content.extend(
            {"type": "image_url", "image_url": {"url": url, "detail": "high"}}
            for url in image_urls
        )
        response = await self.complete(
            [{"role": "user", "content": content}],
            model=model,
            max_tokens=max_tokens,
        )
        return extract_json_object(response.content)
