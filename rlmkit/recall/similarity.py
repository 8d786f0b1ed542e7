"""
Bag-of-terms similarity for task descriptions.

Questions are normalized to lower-case words separated by single spaces,
then turned into a set of unigrams plus adjacent bigrams. Two questions
are compared with Jaccard similarity over those sets.
"""

import re
from typing import FrozenSet

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_question(question: str) -> str:
    """'How do I parse JSON?' -> 'how do i parse json'"""
    return _NON_ALNUM.sub(" ", question.lower()).strip()


def tokens(normalized: str) -> FrozenSet[str]:
    """Unigrams and adjacent-pair bigrams of a normalized question."""
    words = normalized.split()
    bigrams = [f"{a} {b}" for a, b in zip(words, words[1:])]
    return frozenset(words + bigrams)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    # Two empty sets score 0, not 1: nothing in common is not a match.
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)
