"""OpenAI-backed text generation and embedding adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import structlog
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from .errors import LLMFailure


@dataclass
class LLMConfig:
    """Model names and client settings for the OpenAI adapters."""

    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    base_url: str | None = None
    timeout: float = 60.0


def _to_llm_failure(exc: OpenAIError, operation: str) -> LLMFailure:
    if isinstance(exc, (APITimeoutError, APIConnectionError)):
        return LLMFailure(f"{operation} failed: {exc}", retryable=True)
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        return LLMFailure(
            f"{operation} failed with status {status}",
            details={"status": status},
            retryable=status == 429 or status >= 500,
        )
    return LLMFailure(f"{operation} failed: {exc}")


def build_client(api_key: str | None, config: LLMConfig | None = None) -> AsyncOpenAI:
    config = config or LLMConfig()
    return AsyncOpenAI(api_key=api_key, base_url=config.base_url, timeout=config.timeout)


class OpenAITextGenerator:
    """``TextGenerator`` over chat completions; JSON mode uses ``response_format``."""

    def __init__(self, client: AsyncOpenAI, *, config: LLMConfig | None = None) -> None:
        self._client = client
        self._config = config or LLMConfig()
        self._logger = structlog.get_logger(__name__)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            self._logger.warning("llm.request_failed", model=self._config.model, error=str(exc))
            raise _to_llm_failure(exc, "Text generation") from exc
        if not response.choices:
            raise LLMFailure("Text generation returned no choices")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise LLMFailure("Received empty response from language model", retryable=True)
        return content.strip()


class OpenAIEmbedder:
    """``Embedder`` over the embeddings endpoint."""

    def __init__(self, client: AsyncOpenAI, *, config: LLMConfig | None = None) -> None:
        self._client = client
        self._config = config or LLMConfig()
        self._logger = structlog.get_logger(__name__)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self._client.embeddings.create(model=self._config.embedding_model, input=list(texts))
        except OpenAIError as exc:
            self._logger.warning("llm.embedding_failed", model=self._config.embedding_model, error=str(exc))
            raise _to_llm_failure(exc, "Embedding") from exc
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


__all__ = ["LLMConfig", "OpenAIEmbedder", "OpenAITextGenerator", "build_client"]
