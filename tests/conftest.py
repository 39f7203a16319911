from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

import pendulum
import pytest

from labormatch.storage import DatabaseConfig, QualificationTracker, create_engine, create_session_factory, init_models


class ScriptedGenerator:
    """Text generator double that answers through a handler and records every call."""

    def __init__(self, handler: Callable[[str, str, bool], str | Exception]) -> None:
        self._handler = handler
        self.calls: list[dict] = []

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "json_mode": json_mode})
        reply = self._handler(system_prompt, user_prompt, json_mode)
        if isinstance(reply, Exception):
            raise reply
        return reply


class KeywordEmbedder:
    """Bag-of-keywords embedder: one dimension per vocabulary stem present in the text."""

    VOCABULARY = (
        "obstetric",
        "gynecolog",
        "prenatal",
        "cardio",
        "law",
        "general",
        "bounding",
        "box",
        "annotation",
        "image",
        "classification",
    )

    def __init__(self) -> None:
        self.calls: list[str] = []

    def vector(self, text: str) -> list[float]:
        lower = text.lower()
        return [1.0 if stem in lower else 0.0 for stem in self.VOCABULARY]

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vector(text)

    async def embed_many(self, texts):
        return [await self.embed(text) for text in texts]


def passthrough_rewrites(system_prompt: str, user_prompt: str) -> str | None:
    """Answer validator rewrite prompts by echoing the text they were given."""
    if system_prompt.startswith("You rewrite job capsule"):
        match = re.search(r"Original paragraph:\n([\s\S]*?)\n\nAllowed evidence tokens", user_prompt)
        return match.group(1) if match else ""
    if system_prompt.startswith("You compress domain capsules"):
        return user_prompt.split("TEXT:\n", 1)[-1]
    return None


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def frozen_now() -> pendulum.DateTime:
    return pendulum.datetime(2025, 3, 14, 12, 30, tz="UTC")


@pytest.fixture
async def engine(tmp_path: Path):
    engine = create_engine(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'qualifications.db'}"))
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def tracker(engine, frozen_now) -> QualificationTracker:
    return QualificationTracker(create_session_factory(engine), now_provider=lambda: frozen_now)


@pytest.fixture
def scripted_generator() -> type[ScriptedGenerator]:
    return ScriptedGenerator


@pytest.fixture
def rewrite_echo() -> Callable[[str, str], str | None]:
    return passthrough_rewrites
