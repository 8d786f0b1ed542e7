import asyncio
from typing import List

import pytest

from rlmkit.config import RunOptions


class ScriptedGenerator:
    """
    Code generator stub that replays canned replies in order.

    Each reply is a string, an exception to raise, a callable taking the
    messages, or an async callable taking the messages.
    """

    def __init__(self, *replies, default=None):
        self.replies = list(replies)
        self.default = default
        self.calls: List[tuple] = []

    async def complete(self, messages, options):
        self.calls.append((messages, options))

        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("Scripted generator exhausted")

        if isinstance(reply, BaseException):
            raise reply
        if asyncio.iscoroutinefunction(reply):
            return await reply(messages)
        if callable(reply):
            return reply(messages)
        return reply


@pytest.fixture
def options(tmp_path) -> RunOptions:
    return RunOptions(
        log_trajectory=False,
        log_dir=str(tmp_path / "trajectories"),
        recall=False,
        recall_db_path=str(tmp_path / "recall.sqlite3"),
        max_iterations=5,
        return_meta=True,
    )
