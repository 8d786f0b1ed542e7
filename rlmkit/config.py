"""
Configuration for rlmkit.

This module contains all configurable parameters for the engine, the
code generation providers, the recall cache and the trajectory logger.

`settings` holds process-wide defaults. A single run is tuned through
`RunOptions`, which starts from those defaults and accepts per-run overrides.
"""

from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict


class LLMConfig(BaseModel):
    """Configuration for the code generator."""

    provider: Optional[str] = None  # None = first provider with a credential
    model: Optional[str] = None     # None = provider default
    temperature: float = 0.2
    max_tokens: int = 700
    timeout: float = 300.0  # seconds


class OllamaConfig(BaseModel):
    """Configuration for a local Ollama server."""

    base_url: str = "http://localhost:11434"


class RLMConfig(BaseModel):
    """
    Configuration for the recursive engine.

    - max_iterations: Generate/execute rounds before giving up
    - task_timeout: Seconds a rlm_call() waits for its sub-run
    - retry_with_backoff: Retry transient generator failures
    - llm_retries: How many retries before the failure is fatal
    - llm_retry_backoff: Base delay in seconds, doubled per attempt
    """

    max_iterations: int = 20
    task_timeout: float = 60.0
    retry_with_backoff: bool = False
    llm_retries: int = 3
    llm_retry_backoff: float = 0.2


class RecallConfig(BaseModel):
    """Configuration for the recall cache of successful snippets."""

    enabled: bool = False
    db_path: str = "tmp/rlmkit_recall.sqlite3"
    max_snippet_chars: int = 2000
    max_examples: int = 3
    max_rows_considered: int = 500


class TrajectoryConfig(BaseModel):
    """Configuration for JSONL trajectory logs."""

    enabled: bool = True
    log_dir: str = "tmp/rlm_trajectories"
    max_age_days: int = 7


class Settings(BaseModel):
    """Main settings container."""

    llm: LLMConfig = LLMConfig()
    ollama: OllamaConfig = OllamaConfig()
    rlm: RLMConfig = RLMConfig()
    recall: RecallConfig = RecallConfig()
    trajectory: TrajectoryConfig = TrajectoryConfig()

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Debug mode
    debug: bool = False


# Global settings instance
settings = Settings()


class RunOptions(BaseModel):
    """
    Every tunable of one engine run.

    Recursive rlm_call() sub-runs receive a copy of the same options, so
    they share provider, budget and cache configuration with their parent.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Code generation
    provider: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = 700
    api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"
    request_timeout: float = 300.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    # Loop
    max_iterations: int = 20
    task_timeout: float = 60.0
    retry_with_backoff: bool = False
    llm_retries: int = 3
    llm_retry_backoff: float = 0.2
    return_meta: bool = False
    on_iteration: Optional[Callable[[int], Any]] = None

    # Recall cache
    recall: bool = False
    recall_db_path: str = "tmp/rlmkit_recall.sqlite3"
    recall_max_snippet_chars: int = 2000
    recall_max_examples: int = 3
    recall_max_rows: int = 500

    # Trajectory logging
    log_trajectory: bool = True
    log_dir: str = "tmp/rlm_trajectories"
    max_age_days: int = 7

    @classmethod
    def from_settings(cls, base: Optional[Settings] = None, **overrides: Any) -> "RunOptions":
        """Build options from a Settings object, then apply overrides."""
        base = base or settings
        values = {
            "provider": base.llm.provider,
            "model": base.llm.model,
            "temperature": base.llm.temperature,
            "max_tokens": base.llm.max_tokens,
            "request_timeout": base.llm.timeout,
            "ollama_base_url": base.ollama.base_url,
            "max_iterations": base.rlm.max_iterations,
            "task_timeout": base.rlm.task_timeout,
            "retry_with_backoff": base.rlm.retry_with_backoff,
            "llm_retries": base.rlm.llm_retries,
            "llm_retry_backoff": base.rlm.llm_retry_backoff,
            "recall": base.recall.enabled,
            "recall_db_path": base.recall.db_path,
            "recall_max_snippet_chars": base.recall.max_snippet_chars,
            "recall_max_examples": base.recall.max_examples,
            "recall_max_rows": base.recall.max_rows_considered,
            "log_trajectory": base.trajectory.enabled,
            "log_dir": base.trajectory.log_dir,
            "max_age_days": base.trajectory.max_age_days,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
