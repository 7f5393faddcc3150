"""Shared test helpers: C# samples and fakes standing in for the OpenAI SDK client.

Import from here instead of duplicating these in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Iterable

WORKER_SOURCE = """using System;

namespace Sample
{
    public class Worker
    {
        public Worker()
        {
        }

        public int Count { get; set; }

        public void DoWork()
        {
            Count++;
        }

        public enum Mode { Fast, Slow }

        public delegate void Finished(int value);
    }
}
"""

ITEM_SOURCE = """namespace Sample.Models
{
    public class Item
    {
        public string Describe()
        {
            return "item";
        }
    }
}
"""

HELPER_SOURCE = """namespace Sample.Tools
{
    public static class Helper
    {
        public static int Twice(int value)
        {
            return value * 2;
        }
    }
}
"""


@dataclass
class FakeEvent:
    """Mimics the attributes of a chat completion stream event."""

    type: str
    delta: str | None = None


class FakeStream:
    def __init__(
        self,
        events: Iterable[FakeEvent],
        *,
        gate: asyncio.Event | None = None,
        fail_after: int | None = None,
        error: BaseException | None = None,
    ):
        self._events = list(events)
        self._gate = gate
        self._fail_after = fail_after
        self._error = error
        self._position = 0

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> FakeEvent:
        if self._fail_after is not None and self._position == self._fail_after and self._error is not None:
            raise self._error
        if self._position >= len(self._events):
            raise StopAsyncIteration
        if self._gate is not None and self._position > 0:
            await self._gate.wait()
        event = self._events[self._position]
        self._position += 1
        return event


class FakeStreamContext:
    def __init__(self, stream: FakeStream):
        self._stream = stream

    async def __aenter__(self) -> FakeStream:
        return self._stream

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


@dataclass
class FakeCompletions:
    """Scriptable stand-in for ``client.chat.completions``.

    ``responses`` feed :meth:`create` in order; an exception instance is raised
    instead of returned. ``streams`` feed :meth:`stream` the same way.
    """

    responses: list[Any] = field(default_factory=list)
    streams: list[Any] = field(default_factory=list)
    delay: float = 0.0
    gate: asyncio.Event | None = None
    create_calls: list[dict[str, Any]] = field(default_factory=list)
    stream_calls: list[dict[str, Any]] = field(default_factory=list)

    async def create(self, **kwargs: Any) -> Any:
        self.create_calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.responses.pop(0) if self.responses else completion("")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def stream(self, **kwargs: Any) -> FakeStreamContext:
        self.stream_calls.append(kwargs)
        outcome = self.streams.pop(0) if self.streams else FakeStream([])
        if isinstance(outcome, BaseException):
            raise outcome
        return FakeStreamContext(outcome)


def completion(text: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def deltas(*parts: str) -> list[FakeEvent]:
    return [FakeEvent(type="content.delta", delta=part) for part in parts]


def make_sdk_client(completions: FakeCompletions, api_key: str = "test-key") -> SimpleNamespace:
    return SimpleNamespace(api_key=api_key, chat=SimpleNamespace(completions=completions), closed=False)
