"""Execution pipeline: launch, multiplex, relay, record."""

from devrunner.execution.launcher import LaunchError, ProcessHandle, launch, resolve_command
from devrunner.execution.multiplexer import StreamMultiplexer
from devrunner.execution.session import ExecutionSession, SessionRegistry
from devrunner.execution.sink import format_sse, relay_as_sse

__all__ = [
    "LaunchError",
    "ProcessHandle",
    "launch",
    "resolve_command",
    "StreamMultiplexer",
    "ExecutionSession",
    "SessionRegistry",
    "format_sse",
    "relay_as_sse",
]
