"""Trigram similarity compatible with PostgreSQL's ``pg_trgm`` ``similarity()``."""

import re

_WORD_SPLIT = re.compile(r"[^\w]+|_+")


def trigrams(text: str | None) -> set[str]:
    """Trigram set of a string.

    Each word is lowercased and padded with two spaces in front and one
    behind, so ``"cat"`` yields ``"  c"``, ``" ca"``, ``"cat"``, ``"at "``.
    """
    result: set[str] = set()
    if not text:
        return result
    for word in _WORD_SPLIT.split(text.lower()):
        if not word:
            continue
        padded = f"  {word} "
        for index in range(len(padded) - 2):
            result.add(padded[index:index + 3])
    return result


def set_similarity(grams_a: set[str], grams_b: set[str]) -> float:
    """Shared trigrams over all trigrams, 0.0 to 1.0."""
    if not grams_a or not grams_b:
        return 0.0
    return len(grams_a & grams_b) / len(grams_a | grams_b)


def similarity(a: str | None, b: str | None) -> float:
    return set_similarity(trigrams(a), trigrams(b))
