"""Vector ids, metadata builders and an in-memory vector store."""

from __future__ import annotations

import asyncio
from typing import Any, Literal, Mapping, Sequence

import numpy as np

from .schemas import JobClassification, NormalizedUserProfile, UserClassification, VectorMatch, VectorRecord

Section = Literal["domain", "task"]


def user_vector_id(user_id: str, section: Section) -> str:
    return f"usr_{user_id}::{section}"


def job_vector_id(job_id: str, section: Section) -> str:
    return f"job_{job_id}::{section}"


def user_metadata(
    profile: NormalizedUserProfile,
    classification: UserClassification,
    *,
    model: str | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "user_id": profile.user_id,
        "type": "user",
        "user_class": classification.user_class,
        "credentials": list(classification.credentials),
        "domain_codes": list(classification.domain_codes),
        "estimated_experience_years": classification.estimated_experience_years,
        "expertise_tier": classification.expertise_tier,
        "has_labeling_experience": classification.has_labeling_experience,
        "task_capabilities": list(classification.task_capabilities),
        "languages": list(classification.requirements.languages or profile.languages),
    }
    if model:
        metadata["model"] = model
    if classification.requirements.countries:
        metadata["country"] = classification.requirements.countries[0]
    elif profile.country:
        metadata["country"] = profile.country
    return metadata


def job_metadata(job_id: str, classification: JobClassification, *, model: str | None = None) -> dict[str, Any]:
    requirements = classification.requirements
    metadata: dict[str, Any] = {
        "job_id": job_id,
        "type": "job",
        "job_class": classification.job_class,
        "required_credentials": list(requirements.credentials),
        "subject_matter_codes": list(requirements.subject_matter_codes),
        "required_experience_years": requirements.min_experience_years or 0,
        "expertise_tier": requirements.expertise_tier,
        "countries": list(requirements.countries),
        "languages": list(requirements.languages),
    }
    if model:
        metadata["model"] = model
    return metadata


def with_section(metadata: Mapping[str, Any], section: Section) -> dict[str, Any]:
    return {**metadata, "section": section}


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping):
        for operator, operand in condition.items():
            if operator == "$in":
                options = set(operand)
                if isinstance(value, (list, tuple)):
                    if not options.intersection(value):
                        return False
                elif value not in options:
                    return False
            elif operator == "$eq":
                if value != operand:
                    return False
            elif operator == "$ne":
                if value == operand:
                    return False
            else:
                raise ValueError(f"Unsupported filter operator: {operator}")
        return True
    if isinstance(value, (list, tuple)):
        return condition in value
    return value == condition


def metadata_matches(metadata: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    """Evaluate a Pinecone-style filter; list fields match ``$in`` on any overlap."""
    if not filter:
        return True
    return all(key in metadata and _matches_condition(metadata[key], condition) for key, condition in filter.items())


class InMemoryVectorStore:
    """Process-local ``VectorStore`` using cosine similarity over numpy arrays."""

    def __init__(self) -> None:
        self._records: dict[str, VectorRecord] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, vector_id: str, values: Sequence[float], metadata: Mapping[str, Any]) -> None:
        async with self._lock:
            self._records[vector_id] = VectorRecord(id=vector_id, values=tuple(values), metadata=dict(metadata))

    async def fetch(self, vector_id: str) -> VectorRecord | None:
        return self._records.get(vector_id)

    async def delete(self, vector_ids: Sequence[str]) -> None:
        async with self._lock:
            for vector_id in vector_ids:
                self._records.pop(vector_id, None)

    async def query(
        self,
        values: Sequence[float],
        *,
        top_k: int = 10,
        filter: Mapping[str, Any] | None = None,
    ) -> list[VectorMatch]:
        candidates = [record for record in self._records.values() if metadata_matches(record.metadata, filter)]
        if not candidates:
            return []
        query = np.asarray(values, dtype=float)
        matrix = np.asarray([record.values for record in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms == 0, 0.0, matrix @ query / norms)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            VectorMatch(id=candidates[i].id, score=float(scores[i]), metadata=candidates[i].metadata) for i in order
        ]

    def __len__(self) -> int:
        return len(self._records)


__all__ = [
    "InMemoryVectorStore",
    "job_metadata",
    "job_vector_id",
    "metadata_matches",
    "user_metadata",
    "user_vector_id",
    "with_section",
]
