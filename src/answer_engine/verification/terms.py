"""Sentence splitting and term extraction shared by grounding and claim checks."""

from __future__ import annotations

import re

from answer_engine.config.constants import MIN_SENTENCE_CHARS, MIN_TERM_CHARS

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def split_sentences(text: str) -> list[str]:
    parts = (p.strip() for p in _SENTENCE_BOUNDARY.split(text))
    return [p for p in parts if len(p) >= MIN_SENTENCE_CHARS]


def term_set(text: str) -> set[str]:
    cleaned = _NON_ALNUM.sub(" ", text.lower())
    return {t for t in cleaned.split() if len(t) >= MIN_TERM_CHARS}
