"""
Core pytest configuration and fixtures for Phantom testing.

This module provides shared fakes (a scripted completion adapter, an
in-process transport) and fixtures that run sessions on virtual time.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest
from phantom.config import ConnectionConfig
from phantom.llm import LLM
from phantom.models import Message, QAEntry, Vendor
from phantom.scheduling import VirtualScheduler
from phantom.session import Live
from phantom.simulation import Simulated
from phantom.transport import Transport

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


# ===== FAKES =====


class ScriptedLLM(LLM):
    """An adapter that replays canned replies and records every prompt.

    A reply may be a string, an exception instance (raised from the SDK
    call) or a ``(delay, text)`` tuple to simulate a slow vendor.
    """

    vendor = Vendor.ANTHROPIC
    default_model = "scripted-v1"

    def __init__(self, replies: Optional[List[Any]] = None, timeout: float = 5.0):
        super().__init__("sk-ant-scripted", timeout=timeout)
        self.replies = list(replies or [])
        self.prompts: List[str] = []
        self.calls: List[Dict[str, Any]] = []

    async def generate_response(self, messages, model, **kwargs):
        self.prompts.append(messages[-1]["content"])
        self.calls.append({"model": model, **kwargs})
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, tuple):
            delay, reply = reply
            await asyncio.sleep(delay)
        return reply

    def extract_content(self, response):
        return response


class FakeTransport(Transport):
    """Records outgoing verbs; tests push server events with ``fire``."""

    def __init__(self, fail_with: Optional[BaseException] = None):
        super().__init__()
        self.fail_with = fail_with
        self.current_nick: Optional[str] = None
        self.calls: List[Tuple[str, ...]] = []

    @property
    def nick(self):
        return self.current_nick

    async def connect(self, host, port, nick, username, realname):
        self.calls.append(("connect", host, port, nick, username, realname))
        if self.fail_with is not None:
            raise self.fail_with
        self.current_nick = nick

    def join(self, channel):
        self.calls.append(("join", channel))

    def part(self, channel):
        self.calls.append(("part", channel))

    def say(self, target, text):
        self.calls.append(("say", target, text))

    def quit(self, reason):
        self.calls.append(("quit", reason))

    def fire(self, kind: str, **payload: Any) -> None:
        self.emit(kind, **payload)


class Recorder:
    """Collects event payloads per kind."""

    def __init__(self, session, kinds=("connect", "message", "join", "part", "userList", "error")):
        self.events: Dict[str, List[Any]] = {kind: [] for kind in kinds}
        for kind in kinds:
            session.on(kind, self.events[kind].append)

    def __getitem__(self, kind: str) -> List[Any]:
        return self.events[kind]


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def config() -> ConnectionConfig:
    """Connection settings for the test server."""
    return ConnectionConfig(host="irc.test", nick="tester")


@pytest.fixture
def sample_messages() -> List[Message]:
    """A short channel log with one fenced code block."""
    return [
        Message(sender="alice", target="#dev", text="morning all", time=START),
        Message(
            sender="bob",
            target="#dev",
            text="try this:\n```python\nprint('hi')\n```",
            time=START + timedelta(minutes=1),
        ),
        Message(
            sender="alice",
            target="#dev",
            text="we agreed to ship on friday",
            time=START + timedelta(minutes=2),
        ),
    ]


@pytest.fixture
def qa_history() -> List[QAEntry]:
    """Two answered questions."""
    return [
        QAEntry(question="How do I join a channel?", answer="Type /join #name", author="eve"),
        QAEntry(question="Is this open source?", answer="Yes, MIT licensed", author="alice"),
    ]


# ===== SESSION FIXTURES =====


@pytest.fixture
def scheduler() -> VirtualScheduler:
    """A virtual clock starting at START."""
    return VirtualScheduler(start=START)


@pytest.fixture
def simulated(scheduler) -> Simulated:
    """A simulated session on virtual time with no auto-join."""
    return Simulated(scheduler=scheduler, rng=random.Random(7), auto_join=None)


@pytest.fixture
async def connected_simulated(simulated, scheduler, config) -> Simulated:
    """A simulated session that has registered."""
    await simulated.connect(config)
    scheduler.advance(1.0)
    assert simulated.is_connected
    return simulated


@pytest.fixture
def transport() -> FakeTransport:
    """A fake transport recording outgoing verbs."""
    return FakeTransport()


@pytest.fixture
def live(transport) -> Live:
    """A live session on the fake transport."""
    return Live(transport)


@pytest.fixture
async def connected_live(live, transport, config) -> Live:
    """A live session that has registered."""
    await live.connect(config)
    transport.fire("registered")
    assert live.is_connected
    return live


@pytest.fixture
def scripted_llm():
    """Factory for scripted adapters: ``scripted_llm("reply", Exception())``."""

    def make(*replies: Union[str, BaseException, tuple], timeout: float = 5.0):
        return ScriptedLLM(list(replies), timeout=timeout)

    return make


@pytest.fixture
def record():
    """Subscribes a ``Recorder`` to every event kind of a session."""
    return Recorder


@pytest.fixture
def failing_transport() -> FakeTransport:
    """A fake transport whose connect is refused."""
    return FakeTransport(fail_with=ConnectionRefusedError("connection refused"))


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
