"""Execution ledger: append-only rolling log of script runs."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from devrunner.schemas import ExecutionOutcome, OutputChunk
from devrunner.settings import DEFAULT_LOG_PATH, DEFAULT_MAX_LOG_LINES

logger = logging.getLogger(__name__)

ENTRY_RULE = "=" * 80
BODY_RULE = "-" * 80

# Rough line count of one entry, used by recent()
LINES_PER_ENTRY = 10


def format_entry(
    script_name: str,
    params: Mapping[str, Any],
    chunks: Iterable[OutputChunk],
    outcome: ExecutionOutcome,
    timestamp: datetime | None = None,
) -> str:
    """Serialize one execution into its log text block."""
    timestamp = timestamp or datetime.now(timezone.utc)
    exit_code = "N/A" if outcome.exit_code is None else str(outcome.exit_code)

    transcript = "".join(chunk.text for chunk in chunks)
    if transcript and not transcript.endswith("\n"):
        transcript += "\n"

    lines = [
        "",
        ENTRY_RULE,
        f"[{timestamp.isoformat()}] Executed: {script_name}",
        f"Parameters: {json.dumps(dict(params), default=str)}",
        f"Exit Code: {exit_code}",
        f"Outcome: {outcome.kind.value}",
        BODY_RULE,
    ]
    if outcome.error:
        lines.append(f"Error: {outcome.error}")
    return "\n".join(lines) + "\n" + transcript + ENTRY_RULE + "\n\n"


class ExecutionLedger:
    """Rolling plain-text log with a line-count ceiling.

    Each record() appends one whole entry, then trims the file to its last
    max_lines lines. The append and trim happen under one lock, so entries
    from concurrent executions never interleave.
    """

    def __init__(
        self,
        log_path: Path | str | None = None,
        max_lines: int = DEFAULT_MAX_LOG_LINES,
    ):
        """Initialize the ledger.

        Args:
            log_path: Path to the log file
            max_lines: Maximum number of lines kept after each append
        """
        self.log_path = Path(log_path) if log_path else DEFAULT_LOG_PATH
        self.max_lines = max_lines
        self._lock = threading.Lock()

    def record(
        self,
        script_name: str,
        params: Mapping[str, Any],
        chunks: Iterable[OutputChunk],
        outcome: ExecutionOutcome,
    ) -> bool:
        """Append one execution entry and enforce retention.

        Failures are logged and never raised.

        Returns:
            True if the entry was written
        """
        entry = format_entry(script_name, params, chunks, outcome)

        with self._lock:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8", newline="") as f:
                    f.write(entry)
            except OSError as e:
                logger.error(f"Error writing to log file {self.log_path}: {e}")
                return False

            try:
                self._trim()
            except OSError as e:
                logger.error(f"Error trimming log file {self.log_path}: {e}")

        logger.debug(f"Logged execution of {script_name} ({outcome.kind.value})")
        return True

    def _trim(self) -> None:
        """Keep only the last max_lines lines. Caller holds the lock."""
        lines = _split_lines(self.log_path.read_bytes())
        if len(lines) <= self.max_lines:
            return

        self.log_path.write_bytes(b"".join(lines[-self.max_lines:]))
        logger.debug(f"Trimmed {len(lines) - self.max_lines} lines from {self.log_path}")

    def line_count(self) -> int:
        """Get the current number of lines in the log file."""
        with self._lock:
            if not self.log_path.exists():
                return 0
            return len(_split_lines(self.log_path.read_bytes()))

    def recent(self, count: int = 10) -> str:
        """Get the tail of the log, roughly the last count entries."""
        with self._lock:
            try:
                if not self.log_path.exists():
                    return "No logs yet"
                lines = _split_lines(self.log_path.read_bytes())
            except OSError as e:
                return f"Error reading logs: {e}"
        return b"".join(lines[-count * LINES_PER_ENTRY:]).decode("utf-8", errors="replace").rstrip("\n")


def _split_lines(data: bytes) -> list[bytes]:
    """Split on b"\\n" only, keeping terminators. A bare \\r stays inside its line."""
    lines = [line + b"\n" for line in data.split(b"\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines
