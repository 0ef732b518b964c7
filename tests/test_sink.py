"""Tests for the SSE relay."""

import asyncio
import json
from pathlib import Path

from devrunner.discovery import parse_script_metadata
from devrunner.execution.session import ExecutionSession
from devrunner.execution.sink import format_sse, relay_as_sse
from devrunner.schemas import OutcomeKind


class _DummyRequest:
    def __init__(self, disconnected: bool = False):
        self.disconnected = disconnected
        self.calls = 0

    async def is_disconnected(self) -> bool:
        self.calls += 1
        return self.disconnected


def _session(scripts_dir: Path, file_name: str, ledger, args=(), **kwargs) -> ExecutionSession:
    descriptor = parse_script_metadata(scripts_dir / file_name)
    return ExecutionSession(descriptor, {}, list(args), ledger=ledger, **kwargs)


async def _frames(session, request=None) -> list[dict]:
    frames = []
    async for raw in relay_as_sse(session, request):
        text = raw.decode("utf-8")
        assert text.startswith("data: ")
        assert text.endswith("\n\n")
        frames.append(json.loads(text[len("data: "):]))
    return frames


def test_format_sse():
    assert format_sse({"done": True}) == 'data: {"done": true}\n\n'
    assert format_sse({"output": "a\nb"}) == 'data: {"output": "a\\nb"}\n\n'


def test_relay_frames_output_then_done(scripts_dir, ledger):
    session = _session(scripts_dir, "hello.py", ledger, args=["Ada"])

    frames = asyncio.run(_frames(session, _DummyRequest()))

    assert frames[-1] == {"done": True}
    assert "[Process exited with code 0]" in frames[-2]["output"]
    outputs = "".join(f["output"] for f in frames[:-1])
    assert "Hello, Ada" in outputs


def test_relay_output_is_unmodified(scripts_dir, ledger):
    session = _session(scripts_dir, "mixed.py", ledger)

    frames = asyncio.run(_frames(session))

    outputs = [f["output"] for f in frames if "output" in f]
    assert outputs == [chunk.text for chunk in session.transcript]


def test_relay_launch_error(scripts_dir, ledger):
    session = _session(scripts_dir, "hello.py", ledger, args=["Ada"], interpreters={".py": ("/nonexistent/python",)})

    frames = asyncio.run(_frames(session))

    assert len(frames) == 1
    assert "error" in frames[0]
    assert "done" not in frames[0]
    assert session.outcome.kind == OutcomeKind.FAILED


def test_relay_disconnect_kills_child(scripts_dir, ledger):
    async def _run():
        session = _session(scripts_dir, "sleeper.py", ledger)
        frames = await _frames(session, _DummyRequest(disconnected=True))
        code = await asyncio.wait_for(session.handle.wait(), timeout=5)
        return session, frames, code

    session, frames, code = asyncio.run(_run())

    assert frames == []
    assert code != 0
    assert session.outcome.kind == OutcomeKind.CANCELLED


def test_relay_closed_by_server_kills_child(scripts_dir, ledger):
    async def _run():
        session = _session(scripts_dir, "sleeper.py", ledger)
        frames = relay_as_sse(session, _DummyRequest())
        first = await frames.__anext__()
        await frames.aclose()
        code = await asyncio.wait_for(session.handle.wait(), timeout=5)
        return session, first, code

    session, first, code = asyncio.run(_run())

    assert b"started" in first
    assert code != 0
    assert session.outcome.kind == OutcomeKind.CANCELLED
