from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

CHAT_COMPLETIONS_PATH = "/chat/completions"


@dataclass
class LLMError(Exception):
    message: str
    status_code: int | None = None
    body: str | None = None

    def __str__(self) -> str:
        return self.message


class ChatCompletionClient:
    """OpenAI-compatible chat completion endpoint.

    Transport errors and 5xx replies are retried up to ``retries`` times; any
    other non-2xx reply fails immediately. Subclasses only name the call.
    """

    context = "chat"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._attempts = retries + 1
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        failure: Exception | None = None
        status_code: int | None = None
        for _ in range(self._attempts):
            try:
                response = await self._client.post(CHAT_COMPLETIONS_PATH, json=payload)
            except httpx.RequestError as exc:
                failure, status_code = exc, None
                continue
            if response.status_code < 500:
                return response
            status_code = response.status_code
            failure = LLMError(
                f"LLM error {status_code}", status_code=status_code, body=response.text
            )
        raise LLMError("LLM request failed", status_code=status_code) from failure

    async def complete(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._post(payload)
        if not response.is_success:
            raise LLMError(
                f"LLM error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise LLMError(
                f"{self.context.capitalize()} response is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(body, dict) or "choices" not in body:
            raise LLMError(f"Missing 'choices' in {self.context} response")
        return body


class EvaluatorClient(ChatCompletionClient):
    """Scores a single question/answer pair."""

    context = "evaluator"

    async def evaluate(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.complete(payload)


class SummaryClient(ChatCompletionClient):
    """Folds a stage's individual evaluations into one overall summary."""

    context = "summary"

    async def summarize(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.complete(payload)
