"""Startup configuration for devrunner."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_SCRIPTS_DIR = Path("scripts")
DEFAULT_LOG_PATH = Path.home() / ".devrunner" / "scripts.log"

# Keep last ~35k lines (roughly 5MB of transcript)
DEFAULT_MAX_LOG_LINES = 35000

# File suffix -> interpreter command prefix
DEFAULT_INTERPRETERS: dict[str, tuple[str, ...]] = {
    ".sh": ("bash",),
    ".py": (sys.executable,),
    ".js": ("bun", "run"),
    ".ts": ("bun", "run"),
}


@dataclass(frozen=True)
class Settings:
    """Static configuration, fixed at process start."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    scripts_dir: Path = DEFAULT_SCRIPTS_DIR
    log_path: Path = DEFAULT_LOG_PATH
    max_log_lines: int = DEFAULT_MAX_LOG_LINES
    interpreters: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_INTERPRETERS)
    )

    def __post_init__(self) -> None:
        if self.max_log_lines < 1:
            raise ValueError("max_log_lines must be at least 1")
        object.__setattr__(self, "scripts_dir", Path(self.scripts_dir))
        object.__setattr__(self, "log_path", Path(self.log_path))
