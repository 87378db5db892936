"""
Shared fixtures: a virtual clock, stub model callers and small diffs.
"""

import asyncio
from typing import Callable, List

import pytest

from themetree.gateway.clock import Clock
from themetree.utils.diff import DiffLine, FileDiff, Hunk, LineKind


class FakeClock(Clock):
    """Virtual monotonic time; `sleep` advances it instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        seconds = max(0.0, seconds)
        self.sleeps.append(seconds)
        # let ready tasks run at the current time before it moves on
        await asyncio.sleep(0)
        self.now += seconds

    def advance(self, seconds: float):
        self.now += seconds


async def settle(rounds: int = 20):
    """Let every ready task run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_file(path: str, *hunks: List[str]) -> FileDiff:
    """Build a FileDiff from hunks written as unified diff body lines."""
    file_hunks = []
    for index, body in enumerate(hunks):
        lines = []
        old_no = new_no = 1
        for raw in body:
            if raw.startswith("+"):
                lines.append(DiffLine(LineKind.ADDED, raw[1:], None, new_no))
                new_no += 1
            elif raw.startswith("-"):
                lines.append(DiffLine(LineKind.REMOVED, raw[1:], old_no, None))
                old_no += 1
            else:
                lines.append(DiffLine(LineKind.CONTEXT, raw[1:], old_no, new_no))
                old_no += 1
                new_no += 1
        file_hunks.append(Hunk(index=index, header="@@ -1 +1 @@", lines=lines))
    return FileDiff(path=path, hunks=file_hunks)


def scripted_caller(responses: List) -> Callable:
    """
    Async model caller that replays `responses` in order.

    Exceptions in the list are raised; strings are returned. The prompts seen
    are recorded on the returned callable as `.prompts`.
    """
    queue = list(responses)

    async def caller(prompt: str) -> str:
        caller.prompts.append(prompt)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    caller.prompts = []
    return caller


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rename_diff() -> List[FileDiff]:
    return [
        make_file(
            "src/greeter.py",
            [
                " import sys",
                "-def greet(name):",
                "+def welcome(name):",
                "+    # renamed",
                "     return f'hi {name}'",
            ],
        )
    ]


@pytest.fixture
def multi_file_diff() -> List[FileDiff]:
    return [
        make_file(
            "src/auth/login.py",
            [" import os", "-def login(user):", "+def login(user, token):", "+    check(token)", "+    audit(user)"],
            [" class Session:", "+    def refresh(self):", "+        self.touch()", "+        return self"],
        ),
        make_file(
            "src/auth/tokens.py",
            ["+def check(token):", "+    if not token:", "+        raise ValueError('missing token')", "+    return True"],
        ),
        make_file(
            "tests/test_login.py",
            ["+def test_login_requires_token():", "+    with pytest.raises(ValueError):", "+        login('bob', '')"],
        ),
        make_file(
            "config/settings.yaml",
            [" auth:", "-  ttl: 30", "+  ttl: 60"],
        ),
    ]
