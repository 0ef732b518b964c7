"""Pytest configuration and fixtures for devrunner tests."""

import pytest
from pathlib import Path

from devrunner.ledger import ExecutionLedger
from devrunner.settings import Settings


HELLO_SCRIPT = '''#!/usr/bin/env python3
# @name Hello
# @description Greets someone
# @param name:string:required Your name
# @param excited:boolean:optional Add excitement
# @category testing
import sys

name = sys.argv[1]
excited = len(sys.argv) > 2 and sys.argv[2] == "true"
print(f"Hello, {name}!!!" if excited else f"Hello, {name}")
'''

MIXED_SCRIPT = '''# @name Mixed
# @description Writes to both streams and fails
import sys

sys.stdout.write("out-line\\n")
sys.stdout.flush()
sys.stderr.write("err-line\\n")
sys.stderr.flush()
sys.exit(3)
'''

SLEEPER_SCRIPT = '''# @name Sleeper
# @description Prints once then sleeps for a long time
import sys
import time

print("started", flush=True)
time.sleep(60)
print("never printed")
'''

CHATTY_SCRIPT = '''# @name {name}
# @description Prints tagged lines with short pauses
import time

for i in range(5):
    print("{tag}-line-%d" % i, flush=True)
    time.sleep(0.02)
'''

SHELL_SCRIPT = '''#!/usr/bin/env bash
# @name Shell Exit
# @description Echoes its argument and exits cleanly
echo "arg: $1"
exit 0
'''


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory for tests."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def scripts_dir(tmp_workspace: Path) -> Path:
    """Create a scripts directory with annotated sample scripts."""
    scripts = tmp_workspace / "scripts"
    scripts.mkdir()

    (scripts / "hello.py").write_text(HELLO_SCRIPT)
    (scripts / "mixed.py").write_text(MIXED_SCRIPT)
    (scripts / "sleeper.py").write_text(SLEEPER_SCRIPT)
    (scripts / "alpha.py").write_text(CHATTY_SCRIPT.format(name="Alpha", tag="alpha"))
    (scripts / "beta.py").write_text(CHATTY_SCRIPT.format(name="Beta", tag="beta"))
    (scripts / "shell-exit.sh").write_text(SHELL_SCRIPT)

    # Not a script: no annotations
    (scripts / "plain.py").write_text("print('no metadata')\n")
    # Unsupported type
    (scripts / "notes.txt").write_text("# @name Notes\n# @description Not runnable\n")

    return scripts


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Path for a temporary execution log."""
    return tmp_path / "logs" / "scripts.log"


@pytest.fixture
def ledger(log_path: Path) -> ExecutionLedger:
    """Ledger writing to a temporary log."""
    return ExecutionLedger(log_path, max_lines=10000)


@pytest.fixture
def settings(scripts_dir: Path, log_path: Path) -> Settings:
    """Settings pointing at the temporary scripts and log."""
    return Settings(scripts_dir=scripts_dir, log_path=log_path, max_log_lines=10000)
