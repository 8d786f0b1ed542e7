"""
rlmkit - recursive code-generation engine.

Answers a question about an input by letting a model write Python that runs
in a persistent REPL, one step at a time, until the code sets `final`.
"""

from .config import RunOptions, Settings, settings
from .rlm import Answer, BudgetExhausted, RLMEngine, run

__version__ = "0.1.0"

__all__ = [
    "Answer",
    "BudgetExhausted",
    "RLMEngine",
    "RunOptions",
    "Settings",
    "run",
    "settings",
]
