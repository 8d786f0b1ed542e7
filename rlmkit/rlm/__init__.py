"""
RLM (Recursive Language Model) Package

## How RLM Works

Instead of putting the whole input in the prompt, RLM:
1. Stores the input as an `input` variable in a Python REPL
2. The model writes code to examine/search it
3. The code can call rlm_call() to solve sub-problems recursively
4. The code assigns `final` when it has the answer

## Example Flow

    User: "What are the main themes?"

    Model writes:
        ```python
        print(len(input))
        print(input[:1000])
        ```

    Feedback: stdout_length: 1006, stdout_preview_200: '50000\\n...'

    Model writes:
        ```python
        sections = [s for s in input.split('##') if s.strip()]
        themes = [rlm_call("Theme of this section", s) for s in sections]
        final = "Main themes: " + ", ".join(themes)
        ```

    Result: "Main themes: AI safety, ethics, future predictions"

## Files

- base.py: Result and telemetry data classes
- environment.py: Evaluator with scoped output capture
- trajectory.py: JSONL trajectory logger
- engine.py: Main loop that coordinates the model and the Evaluator
"""

from .base import (
    Answer,
    BudgetExhausted,
    IterationRecord,
    PartialOutcome,
    RLMError,
    SubCallLog,
    SubCallSummary,
    SubCallTimeoutError,
)
from .environment import EvalResult, Evaluator, ExecutionError, OutputCapture
from .engine import RLMEngine, extract_code, is_transient, run
from .trajectory import TrajectoryLogger

__all__ = [
    "Answer",
    "BudgetExhausted",
    "EvalResult",
    "Evaluator",
    "ExecutionError",
    "IterationRecord",
    "OutputCapture",
    "PartialOutcome",
    "RLMEngine",
    "RLMError",
    "SubCallLog",
    "SubCallSummary",
    "SubCallTimeoutError",
    "TrajectoryLogger",
    "extract_code",
    "is_transient",
    "run",
]
