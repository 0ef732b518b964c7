"""Execution sessions: one child process from launch to ledger entry."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import aclosing
from pathlib import Path
from threading import Lock
from typing import Any, AsyncIterator, Mapping, Sequence

from devrunner.execution.launcher import LaunchError, ProcessHandle, launch, resolve_command
from devrunner.execution.multiplexer import StreamMultiplexer
from devrunner.ledger import ExecutionLedger
from devrunner.schemas import ExecutionOutcome, OutcomeKind, OutputChunk, ScriptDescriptor

logger = logging.getLogger(__name__)

KILLED_BY_USER = "\n[Process killed by user]\n"


class ExecutionSession:
    """Run one script and keep the transcript its consumer saw.

    The transcript holds exactly the chunks yielded by run(), plus the
    closing chunk added on cancellation. Once the outcome is known it is
    handed to the ledger, exactly once.
    """

    def __init__(
        self,
        descriptor: ScriptDescriptor,
        params: Mapping[str, Any],
        args: Sequence[str],
        ledger: ExecutionLedger | None = None,
        working_dir: str | Path | None = None,
        interpreters: Mapping[str, Sequence[str]] | None = None,
    ):
        self.execution_id = f"exec-{uuid.uuid4().hex[:12]}"
        self.descriptor = descriptor
        self.params = dict(params)
        self.args = list(args)
        self.working_dir = working_dir
        self.transcript: list[OutputChunk] = []
        self.outcome: ExecutionOutcome | None = None

        self._ledger = ledger
        self._command = [*resolve_command(descriptor.file_path, interpreters), descriptor.file_path]
        self._handle: ProcessHandle | None = None
        self._pending_record: asyncio.Future | None = None

    @property
    def handle(self) -> ProcessHandle | None:
        return self._handle

    def _set_outcome(self, outcome: ExecutionOutcome) -> bool:
        if self.outcome is not None:
            return False
        self.outcome = outcome
        logger.info(
            f"Execution {self.execution_id} of {self.descriptor.name} finished: "
            f"{outcome.kind.value} (exit code: {outcome.exit_code})"
        )
        return True

    def _record(self, transcript: list[OutputChunk] | None = None) -> None:
        if self._ledger is not None:
            chunks = list(self.transcript) if transcript is None else transcript
            self._ledger.record(self.descriptor.name, self.params, chunks, self.outcome)

    async def _finish(self, outcome: ExecutionOutcome) -> None:
        if self._set_outcome(outcome):
            await asyncio.to_thread(self._record)

    def cancel(self) -> None:
        """Kill the child and record a cancelled outcome.

        Idempotent. A no-op once the execution has finished.
        """
        if self.outcome is not None:
            return
        if self._handle is not None:
            self._handle.kill()
        self.transcript.append(OutputChunk.system(KILLED_BY_USER))
        if not self._set_outcome(ExecutionOutcome.cancelled()):
            return

        # Not awaited: cancel() may run inside an already-cancelled task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._record()
            return
        self._pending_record = loop.run_in_executor(None, self._record, list(self.transcript))

    async def run(self) -> AsyncIterator[OutputChunk]:
        """Launch the script and yield its output chunks as they arrive.

        Raises:
            LaunchError: The child process could not be started
        """
        logger.info(f"Executing {self.descriptor.name} ({self.execution_id}) with args {self.args}")

        if self.outcome is None:
            try:
                self._handle = await launch(self._command, self.args, self.working_dir)
            except LaunchError as e:
                await self._finish(ExecutionOutcome.failed(str(e)))
                raise

        if self.outcome is not None:
            # Cancelled before or while the child was starting
            if self._handle is not None:
                self._handle.kill()
        else:
            multiplexer = StreamMultiplexer(self._handle)
            try:
                async with aclosing(multiplexer.chunks()) as chunks:
                    async for chunk in chunks:
                        if self.outcome is not None:
                            break
                        self.transcript.append(chunk)
                        yield chunk
            except (asyncio.CancelledError, GeneratorExit):
                self.cancel()
                raise
            except Exception as e:
                logger.exception(f"Execution {self.execution_id} failed")
                self._handle.kill()
                chunk = OutputChunk.system(f"\n[Error: {e}]\n")
                self.transcript.append(chunk)
                await self._finish(ExecutionOutcome.failed(str(e)))
                yield chunk
                return

            if self.outcome is None:
                await self._finish(ExecutionOutcome.completed(multiplexer.exit_code))
                return

        if self.outcome.kind == OutcomeKind.CANCELLED:
            if self._pending_record is not None:
                await self._pending_record
            # Stopped from outside the stream; let the consumer see why
            yield self.transcript[-1]


class SessionRegistry:
    """Live executions by id, so they can be stopped from outside the stream."""

    def __init__(self):
        self._sessions: dict[str, ExecutionSession] = {}
        self._lock = Lock()

    def add(self, session: ExecutionSession) -> None:
        with self._lock:
            self._sessions[session.execution_id] = session

    def remove(self, execution_id: str) -> None:
        with self._lock:
            self._sessions.pop(execution_id, None)

    def get(self, execution_id: str) -> ExecutionSession | None:
        with self._lock:
            return self._sessions.get(execution_id)

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def size(self) -> int:
        with self._lock:
            return len(self._sessions)

    def cancel_all(self) -> int:
        """Cancel every live session, return how many were cancelled."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.cancel()
        return len(sessions)
