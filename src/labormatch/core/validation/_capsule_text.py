"""Parsing helpers for ``<body>\\nKeywords: a, b`` capsule text."""

from __future__ import annotations

import re
from typing import NamedTuple

_CAPSULE_SPLIT = re.compile(r"([\s\S]*?)\nKeywords:\s*(.+)$", re.IGNORECASE)
_KEYWORDS_LINE = re.compile(r"Keywords:\s*(.+)$", re.IGNORECASE)
_KEYWORDS_LINE_STRIP = re.compile(r"Keywords:[^\n]*$", re.IGNORECASE)
_DELIMITERS = re.compile(r"[;,]")


class CapsuleParts(NamedTuple):
    body: str
    keywords_line: str | None
    keywords: list[str]


def split_keywords(line: str) -> list[str]:
    """Comma/semicolon separated; whitespace split when neither delimiter is present."""
    if not _DELIMITERS.search(line):
        return line.split()
    return [part.strip() for part in _DELIMITERS.split(line) if part.strip()]


def parse_capsule(text: str) -> CapsuleParts:
    trimmed = text.strip()
    match = _CAPSULE_SPLIT.search(trimmed)
    if match is None:
        line_match = _KEYWORDS_LINE.search(trimmed)
        if line_match is None:
            return CapsuleParts(trimmed, None, [])
        line = line_match.group(1).strip()
        return CapsuleParts(strip_keywords_line(trimmed), line or None, split_keywords(line))
    body = match.group(1).strip()
    line = match.group(2).strip()
    return CapsuleParts(body, line or None, split_keywords(line))


def strip_keywords_line(text: str) -> str:
    return _KEYWORDS_LINE_STRIP.sub("", text.strip()).strip()


def sanitize_whitespace(text: str) -> str:
    collapsed = re.sub(r"\s+", " ", text)
    return re.sub(r"\s+,", ",", collapsed).strip()


def split_sentences(text: str) -> list[str]:
    return [sentence.strip() for sentence in re.split(r"[.?!\n\r]+", text) if sentence.strip()]
