"""Collaborator contracts consumed by the matching core."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from ..schemas import ClassificationResult, VectorMatch, VectorRecord


@runtime_checkable
class TextGenerator(Protocol):
    """Chat-style text generation with an optional JSON-structured mode."""

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        """Return the generated text or raise ``LLMFailure``."""


@runtime_checkable
class Embedder(Protocol):
    """Turn text into fixed-length vectors."""

    async def embed(self, text: str) -> list[float]:
        """Return the embedding for ``text``."""

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Return embeddings in input order."""


@runtime_checkable
class VectorStore(Protocol):
    """Upsert and query vectors keyed by ``<prefix>_<id>::<section>``."""

    async def upsert(self, vector_id: str, values: Sequence[float], metadata: Mapping[str, Any]) -> None:
        """Insert or replace a vector."""

    async def fetch(self, vector_id: str) -> VectorRecord | None:
        """Return a stored vector or None."""

    async def query(
        self,
        values: Sequence[float],
        *,
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return the closest vectors whose metadata satisfies ``filter``."""


@runtime_checkable
class Classifier(Protocol):
    """Classify a normalized job posting or user profile."""

    async def classify(self, profile: Any) -> ClassificationResult:
        """Return a classification; implementations may raise on failure."""


__all__ = ["Classifier", "Embedder", "TextGenerator", "VectorStore"]
