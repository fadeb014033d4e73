"""Lexical similarity used by MemoryRepository.find_similar."""

import re
from typing import FrozenSet

_NON_WORD = re.compile(r"\W+")


def tokenize(text: str) -> FrozenSet[str]:
    """Lower-case ``text``, split on non-word runs and drop empty tokens."""
    return frozenset(token for token in _NON_WORD.split(text.lower()) if token)


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set Jaccard similarity of two texts, in [0, 1].

    Two texts with no tokens at all score 0.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)
