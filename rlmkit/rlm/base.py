"""
RLM Base Classes

Simple data structures for tracking RLM execution: what each iteration
did, which sub-calls it made, and how a run ended.
"""

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional


class RLMError(Exception):
    """Base class for engine failures."""


class SubCallTimeoutError(RLMError, TimeoutError):
    """Raised inside generated code when rlm_call() outlives task_timeout."""


@dataclass(frozen=True)
class SubCallSummary:
    """One rlm_call() made by generated code."""
    question: str
    input_length: int
    input_prefix: str   # First 120 characters of the sub-input

    def to_dict(self) -> dict:
        return asdict(self)


class SubCallLog:
    """
    Collects the rlm_call() summaries of the current iteration.

    The engine hands one log to the rlm_call closure and drains it after
    every evaluation, so each iteration only sees its own sub-calls.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: List[SubCallSummary] = []

    def record(self, question: str, sub_input: str) -> None:
        summary = SubCallSummary(
            question=question,
            input_length=len(sub_input),
            input_prefix=sub_input[:120],
        )
        with self._lock:
            self._calls.append(summary)

    def drain(self) -> List[SubCallSummary]:
        with self._lock:
            calls, self._calls = self._calls, []
        return calls


@dataclass
class IterationRecord:
    """One line of a trajectory log."""
    iteration: int
    code: str
    stdout_preview: str
    sub_calls: List[SubCallSummary] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "code": self.code,
            "stdout_preview": self.stdout_preview,
            "sub_calls": [c.to_dict() for c in self.sub_calls],
            "timestamp": self.timestamp,
        }


@dataclass
class PartialOutcome:
    """What the last iteration produced when the budget ran out."""
    result: Any
    stdout: str
    code: str


@dataclass
class Answer:
    """The generated code set `final`."""
    value: Any
    iterations: int
    trajectory: Optional[str] = None


@dataclass
class BudgetExhausted:
    """max_iterations passed without a final value."""
    partial: Optional[PartialOutcome]
    iterations: int
    trajectory: Optional[str] = None
