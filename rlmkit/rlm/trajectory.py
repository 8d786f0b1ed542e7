"""
Trajectory Logger - one JSONL file per run.

Each line is one iteration: the code that ran, a preview of what it
printed, and the rlm_call() sub-calls it made.
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List


logger = logging.getLogger(__name__)


class TrajectoryLogger:
    """Writes and sweeps trajectory files under one directory."""

    def __init__(self, log_dir: str = "tmp/rlm_trajectories", max_age_days: int = 7):
        self.log_dir = Path(log_dir)
        self.max_age_days = max_age_days if max_age_days >= 0 else 7

    @classmethod
    def from_options(cls, options) -> "TrajectoryLogger":
        return cls(log_dir=options.log_dir, max_age_days=options.max_age_days)

    def open_session(self) -> str:
        """Create an empty, uniquely named trajectory file and return its path."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        path = self.log_dir / f"trajectory_{stamp}_{uuid.uuid4().hex[:12]}.jsonl"
        path.touch()
        return str(path)

    def append(self, session: str, record: dict) -> None:
        """Append one record as a JSON line, adding a timestamp if missing."""
        payload = dict(record)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        with open(session, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=repr) + "\n")

    def list_sessions(self) -> List[str]:
        if not self.log_dir.is_dir():
            return []
        return sorted(str(p) for p in self.log_dir.glob("*.jsonl"))

    def cleanup(self) -> int:
        """Delete trajectory files older than max_age_days. Returns the count."""
        if not self.log_dir.is_dir():
            return 0

        cutoff = time.time() - self.max_age_days * 86_400
        deleted = 0
        for path in self.log_dir.glob("*.jsonl"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)

        logger.info("Removed %d trajectory files older than %d days", deleted, self.max_age_days)
        return deleted
