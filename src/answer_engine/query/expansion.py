"""Query normalization and deterministic phrasing variations for recall expansion."""

from __future__ import annotations

import re
import unicodedata

_SYNONYM_PREFIXES: dict[str, list[str]] = {
    "what": ["which", "what is"],
    "how": ["what is the process", "what are the steps"],
    "who": ["which person", "which team"],
    "when": ["what time", "what date"],
    "where": ["which location", "in what"],
}

MAX_VARIATIONS = 5


def normalize_query(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    return re.sub(r"\s+", " ", text).strip()


def generate_query_variations(query: str) -> list[str]:
    """Return the query followed by rephrasings of its leading question word."""
    variations = [query]
    lower = query.lower()
    for word, alternatives in _SYNONYM_PREFIXES.items():
        if lower.startswith(word):
            for alt in alternatives:
                variation = re.sub(rf"^{word}", alt, query, count=1, flags=re.IGNORECASE)
                if variation != query:
                    variations.append(variation)
            break
    return variations[:MAX_VARIATIONS]
