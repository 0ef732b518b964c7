"""Live transport: relay an execution as Server-Sent Events."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Protocol

from devrunner.execution.launcher import LaunchError
from devrunner.execution.session import ExecutionSession
from devrunner.schemas import OutcomeKind

logger = logging.getLogger(__name__)


class DisconnectAware(Protocol):
    """The part of a Starlette Request the relay uses."""

    async def is_disconnected(self) -> bool: ...


def format_sse(payload: dict[str, Any]) -> str:
    """Frame one payload as an SSE ``data:`` message."""
    return f"data: {json.dumps(payload)}\n\n"


async def relay_as_sse(
    session: ExecutionSession,
    request: DisconnectAware | None = None,
) -> AsyncIterator[bytes]:
    """Stream a session's output, one SSE message per chunk.

    Frames:
    - ``{"output": text}`` for every chunk, unmodified
    - ``{"done": true}`` once the process has exited
    - ``{"error": message}`` if it could not start or failed mid-stream

    A client disconnect, seen either through the request or as the server
    cancelling this generator, kills the child via session.cancel().
    """
    try:
        async with aclosing(session.run()) as chunks:
            async for chunk in chunks:
                if request is not None and await request.is_disconnected():
                    logger.info(f"Client disconnected from {session.execution_id}")
                    session.cancel()
                    return
                yield format_sse({"output": chunk.text}).encode("utf-8")
    except LaunchError as e:
        yield format_sse({"error": str(e)}).encode("utf-8")
        return
    except (asyncio.CancelledError, GeneratorExit):
        session.cancel()
        raise

    if session.outcome is not None and session.outcome.kind == OutcomeKind.FAILED:
        yield format_sse({"error": session.outcome.error or "Execution failed"}).encode("utf-8")
        return

    yield format_sse({"done": True}).encode("utf-8")
