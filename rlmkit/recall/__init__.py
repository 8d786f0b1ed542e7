"""
Recall Package

Remembers code that solved earlier questions and hands it back as examples
for similar questions.
- similarity.py: Question normalization and Jaccard scoring
- store.py: SQLite-backed RecallStore
"""

from .similarity import jaccard, normalize_question, tokens
from .store import RecallEntry, RecallStore, RecallStoreError

__all__ = [
    "RecallEntry",
    "RecallStore",
    "RecallStoreError",
    "jaccard",
    "normalize_question",
    "tokens",
]
