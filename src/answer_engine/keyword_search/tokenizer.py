"""Text preprocessing for full-text keyword search."""

from __future__ import annotations

import re

from answer_engine.config.constants import STOPWORDS


def tokenize(text: str) -> list[str]:
    """Tokenize text for keyword search: lowercase, strip punctuation, remove stopwords."""
    text = text.lower()
    text = re.sub(r"[^\w\s]", " ", text)
    tokens = text.split()
    return [t for t in tokens if t not in STOPWORDS and len(t) > 1]


def to_fts_query(text: str) -> str | None:
    """Build an FTS5 MATCH expression from free text; None when nothing is searchable."""
    terms = list(dict.fromkeys(tokenize(text)))
    if not terms:
        return None
    return " OR ".join(f'"{t}"' for t in terms)
