"""CLI for devrunner - serve, list and run annotated utility scripts."""

from __future__ import annotations

import asyncio
import json
import re
import sys
from contextlib import aclosing
from pathlib import Path

import click

from devrunner import __version__
from devrunner.settings import (
    DEFAULT_HOST,
    DEFAULT_LOG_PATH,
    DEFAULT_MAX_LOG_LINES,
    DEFAULT_PORT,
    DEFAULT_SCRIPTS_DIR,
    Settings,
)

EXIT_TRAILER_RE = re.compile(r"\[Process exited with code (-?\d+)\]")

scripts_dir_option = click.option(
    "--scripts-dir", "-s",
    default=str(DEFAULT_SCRIPTS_DIR),
    envvar="DEVRUNNER_SCRIPTS_DIR",
    show_default=True,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    help="Directory containing annotated scripts",
)

log_file_option = click.option(
    "--log-file",
    default=str(DEFAULT_LOG_PATH),
    envvar="DEVRUNNER_LOG_FILE",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Rolling execution log",
)


@click.group()
@click.version_option(version=__version__, prog_name="devrunner")
def main() -> None:
    """devrunner - run annotated developer-utility scripts.

    Discovers scripts with @name/@description/@param comment annotations and
    runs them locally or through a streaming HTTP API.
    """
    pass


@main.command()
@click.option("--port", default=DEFAULT_PORT, envvar="DEVRUNNER_PORT", help="Port to run the server on")
@click.option("--host", default=DEFAULT_HOST, envvar="DEVRUNNER_HOST", help="Host to bind to")
@scripts_dir_option
@log_file_option
@click.option(
    "--max-log-lines",
    default=DEFAULT_MAX_LOG_LINES,
    envvar="DEVRUNNER_MAX_LOG_LINES",
    type=click.IntRange(min=1),
    help="Lines kept in the execution log",
)
def serve(port: int, host: str, scripts_dir: str, log_file: str, max_log_lines: int) -> None:
    """Start the devrunner HTTP server."""
    import uvicorn

    from devrunner.server import create_app

    settings = Settings(
        host=host,
        port=port,
        scripts_dir=Path(scripts_dir),
        log_path=Path(log_file),
        max_log_lines=max_log_lines,
    )

    click.echo(f"Starting devrunner on http://{host}:{port}")
    click.echo(f"Scripts directory: {scripts_dir}")
    uvicorn.run(create_app(settings), host=host, port=port)


@main.command(name="list")
@scripts_dir_option
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
def list_scripts(scripts_dir: str, raw: bool) -> None:
    """List discovered scripts and their parameters."""
    from devrunner.discovery import discover_scripts

    scripts = discover_scripts(scripts_dir)

    if raw:
        click.echo(json.dumps([s.model_dump(mode="json", by_alias=True) for s in scripts], indent=2))
        return

    if not scripts:
        click.echo(f"No scripts found in {scripts_dir}")
        return

    for script in scripts:
        click.echo(f"{script.file_name}  [{script.category}]  {script.name}")
        click.echo(f"    {script.description}")
        for param in script.params:
            flag = "required" if param.required else "optional"
            choices = f" ({', '.join(param.options)})" if param.options else ""
            click.echo(f"    - {param.name}: {param.type.value}, {flag}{choices}  {param.description}")


def _parse_params(pairs: tuple[str, ...]) -> dict[str, str]:
    params = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got '{pair}'", param_hint="--param")
        params[name] = value
    return params


async def _run_local(
    file_name: str,
    params: dict[str, str],
    scripts_dir: str,
    working_dir: str | None,
    log_file: str,
) -> int:
    from devrunner.binder import bind
    from devrunner.discovery import ScriptCatalog
    from devrunner.execution.session import ExecutionSession
    from devrunner.ledger import ExecutionLedger

    catalog = ScriptCatalog(scripts_dir)
    catalog.refresh(strict=True)
    descriptor = catalog.get(file_name)
    args = bind(descriptor, params)

    session = ExecutionSession(
        descriptor,
        params,
        args,
        ledger=ExecutionLedger(log_file),
        working_dir=working_dir,
    )
    async with aclosing(session.run()) as chunks:
        async for chunk in chunks:
            click.echo(chunk.text, nl=False)

    if session.outcome is None or session.outcome.exit_code is None:
        return 1
    return session.outcome.exit_code


def _run_remote(server: str, file_name: str, params: dict[str, str], working_dir: str | None) -> int:
    import httpx

    body = {"params": params}
    if working_dir:
        body["workingDir"] = working_dir

    url = f"{server.rstrip('/')}/api/execute/{file_name}"
    exit_code = 0
    try:
        with httpx.Client(timeout=None) as client, client.stream("POST", url, json=body) as response:
            if response.status_code != 200:
                response.read()
                message = response.json().get("error", response.text)
                raise click.ClickException(f"{response.status_code}: {message}")

            for line in response.iter_lines():
                if not line.startswith("data: "):
                    continue
                event = json.loads(line[len("data: "):])
                if "output" in event:
                    click.echo(event["output"], nl=False)
                    match = EXIT_TRAILER_RE.search(event["output"])
                    if match:
                        exit_code = int(match.group(1))
                elif "error" in event:
                    click.echo(f"Error: {event['error']}", err=True)
                    exit_code = 1
    except httpx.HTTPError as e:
        raise click.ClickException(f"Cannot reach devrunner server at {server}: {e}")
    return exit_code


@main.command()
@click.argument("file_name")
@click.option("--param", "-p", "param_pairs", multiple=True, help="Parameter as NAME=VALUE (repeatable)")
@click.option(
    "--working-dir", "-w",
    default=None,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    help="Working directory for the script",
)
@click.option("--server", default=None, help="Run through a devrunner server at this URL")
@click.option(
    "--scripts-dir", "-s",
    default=str(DEFAULT_SCRIPTS_DIR),
    envvar="DEVRUNNER_SCRIPTS_DIR",
    show_default=True,
    type=click.Path(file_okay=False, dir_okay=True, resolve_path=True),
    help="Directory containing annotated scripts (ignored with --server)",
)
@log_file_option
def run(
    file_name: str,
    param_pairs: tuple[str, ...],
    working_dir: str | None,
    server: str | None,
    scripts_dir: str,
    log_file: str,
) -> None:
    """Run a script and stream its output to the terminal.

    Exits with the script's own exit code.

    \b
    Example:
        devrunner run hello-world.py -p name=Ada -p excited=true
        devrunner run port-killer.sh -p port=8080 --server http://127.0.0.1:3000
    """
    from devrunner.binder import ParameterError
    from devrunner.discovery import DiscoveryError, UnknownScriptError
    from devrunner.execution.launcher import LaunchError

    params = _parse_params(param_pairs)

    if server:
        sys.exit(_run_remote(server, file_name, params, working_dir))

    try:
        exit_code = asyncio.run(_run_local(file_name, params, scripts_dir, working_dir, log_file))
    except (ParameterError, UnknownScriptError, DiscoveryError, LaunchError) as e:
        raise click.ClickException(str(e))
    sys.exit(exit_code)


@main.command()
@click.option("--count", "-n", default=10, type=click.IntRange(min=1), help="Approximate number of entries")
@log_file_option
def logs(count: int, log_file: str) -> None:
    """Show the most recent execution log entries."""
    from devrunner.ledger import ExecutionLedger

    click.echo(ExecutionLedger(log_file).recent(count))


if __name__ == "__main__":
    main()
