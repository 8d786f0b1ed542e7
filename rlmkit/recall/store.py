"""
Recall Store - SQLite cache of snippets that solved earlier questions.

Every call opens its own connection, does its work and closes it again, so
sibling rlm_call() sub-runs can read and write the same file concurrently.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from .similarity import jaccard, normalize_question, tokens

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS recall_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    question TEXT NOT NULL,
    question_norm TEXT NOT NULL,
    snippet TEXT NOT NULL,
    inserted_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS recall_entries_question_norm_idx
    ON recall_entries(question_norm);
"""


class RecallStoreError(Exception):
    """Raised when the backing database cannot be read or written."""


@dataclass(frozen=True)
class RecallEntry:
    """One cached (question, snippet) pair."""
    id: int
    question: str
    question_norm: str
    snippet: str
    inserted_at: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoredSnippet:
    snippet: str
    score: float
    recency: tuple


class RecallStore:
    """
    Cache of code snippets keyed by the question they answered.

    Usage:
        store = RecallStore("tmp/recall.sqlite3")
        store.store("How to parse JSON?", "final = json.loads(input)")
        store.retrieve("parsing JSON data")   # -> ["final = json.loads(input)"]

    A disabled store never touches the database.
    """

    def __init__(
        self,
        db_path: str = "tmp/rlmkit_recall.sqlite3",
        enabled: bool = True,
        max_snippet_chars: int = 2000,
        max_examples: int = 3,
        max_rows_considered: int = 500,
    ):
        self.db_path = db_path
        self.enabled = enabled
        self.max_snippet_chars = max_snippet_chars if max_snippet_chars > 0 else 2000
        self.max_examples = max_examples
        self.max_rows_considered = max_rows_considered

    @classmethod
    def from_options(cls, options) -> "RecallStore":
        return cls(
            db_path=options.recall_db_path,
            enabled=options.recall,
            max_snippet_chars=options.recall_max_snippet_chars,
            max_examples=options.recall_max_examples,
            max_rows_considered=options.recall_max_rows,
        )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=30)
        except (OSError, sqlite3.Error) as e:
            raise RecallStoreError(f"Cannot open recall store {self.db_path}: {e}") from e

        try:
            conn.executescript(SCHEMA)
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise RecallStoreError(f"Recall store error: {e}") from e
        finally:
            conn.close()

    def store(self, question: str, snippet: str) -> None:
        """Remember a snippet that produced a final answer."""
        if not self.enabled:
            return

        snippet = snippet.strip()[: self.max_snippet_chars]
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO recall_entries (question, question_norm, snippet, inserted_at) "
                "VALUES (?, ?, ?, ?)",
                (question, normalize_question(question), snippet, time.time()),
            )
        logger.debug("Stored recall snippet for %r", question[:80])

    def retrieve(self, question: str, k: Optional[int] = None) -> List[str]:
        """Return up to k distinct snippets for the most similar questions."""
        if not self.enabled:
            return []

        k = self.max_examples if k is None else k
        if k <= 0:
            return []
        query = tokens(normalize_question(question))

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, question_norm, snippet, inserted_at FROM recall_entries "
                "ORDER BY inserted_at DESC, id DESC LIMIT ?",
                (self.max_rows_considered,),
            ).fetchall()

        scored = []
        for row_id, question_norm, snippet, inserted_at in rows:
            score = jaccard(query, tokens(question_norm))
            if score > 0.0:
                scored.append(ScoredSnippet(snippet, score, (inserted_at, row_id)))

        # Best score first; newer entries win ties
        scored.sort(key=lambda s: (s.score, s.recency), reverse=True)

        results: List[str] = []
        for item in scored:
            snippet = item.snippet[: self.max_snippet_chars]
            if snippet in results:
                continue
            results.append(snippet)
            if len(results) >= k:
                break
        return results

    def list(self) -> List[RecallEntry]:
        """All entries, most recent first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, question, question_norm, snippet, inserted_at FROM recall_entries "
                "ORDER BY inserted_at DESC, id DESC"
            ).fetchall()
        return [RecallEntry(*row) for row in rows]

    def clear(self) -> int:
        """Delete every entry and return how many were removed."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM recall_entries")
            deleted = cursor.rowcount
        logger.info("Cleared %d recall entries from %s", deleted, self.db_path)
        return deleted
