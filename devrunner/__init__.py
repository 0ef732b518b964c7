"""devrunner - local developer-utility script runner.

Discovers annotated scripts, exposes them over a small HTTP API, runs them as
child processes and streams their output back live, keeping a rolling log of
every run.
"""

__version__ = "0.1.0"
