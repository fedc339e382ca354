"""Shared test fixtures for handoff.

Provides the schemas and a call-counting producer used across the
guard and retry tests.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import pytest
from pydantic import BaseModel, Field


class SimpleInput(BaseModel):
    name: str
    value: int


class SimpleOutput(BaseModel):
    result: str
    score: int


class Mood(str, Enum):
    HAPPY = "happy"
    SAD = "sad"


class Review(BaseModel):
    summary: str = Field(min_length=10)
    stars: int = Field(ge=1, le=5)
    mood: Mood


class Producer:
    """Callable producer returning canned results, one per attempt.

    Items that are exceptions are raised instead of returned. The last
    item repeats once the list is exhausted. Every call records the
    ambient retry state it observed.
    """

    def __init__(self, *results):
        self.results = list(results) or [{"result": "ok", "score": 1}]
        self.calls: list[tuple] = []
        self.seen_attempts: list[int] = []
        self.seen_feedback: list[str | None] = []

    def __call__(self, *args, **kwargs):
        from handoff import retry

        self.seen_attempts.append(retry.attempt)
        self.seen_feedback.append(retry.feedback())
        idx = min(len(self.calls), len(self.results) - 1)
        self.calls.append((args, kwargs))
        item = self.results[idx]
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def valid_output() -> dict:
    return {"result": "ok", "score": 42}


@pytest.fixture
def invalid_output() -> dict:
    # Missing 'score'
    return {"result": "ok"}


class AsyncProducer(Producer):
    """Producer whose ``__call__`` is a coroutine function."""

    async def __call__(self, *args, **kwargs):
        await asyncio.sleep(0)
        return super().__call__(*args, **kwargs)
