"""Script discovery: parse comment annotations into ScriptDescriptors."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from devrunner.schemas import ParameterSpec, ScriptContext, ScriptDescriptor
from devrunner.settings import DEFAULT_INTERPRETERS

logger = logging.getLogger(__name__)

# "# @tag value", "// @tag value", " * @tag value", "/** @tag value"
ANNOTATION_PATTERNS = [
    re.compile(r"^#\s*@(\w+)\s+(.+)$"),
    re.compile(r"^(?://|/?\*+)\s*@(\w+)\s+(.+)$"),
]


class DiscoveryError(Exception):
    """Raised when the scripts directory cannot be scanned."""

    pass


class UnknownScriptError(Exception):
    """Raised when no discovered script has the requested file name."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"Script not found: {file_name}")


def parse_param(value: str) -> ParameterSpec | None:
    """Parse one ``@param`` value.

    Format: ``name:type:required|optional[:opt1,opt2] description``

    Returns None for malformed definitions.
    """
    definition, _, description = value.strip().partition(" ")
    parts = definition.split(":")
    if len(parts) < 3:
        return None

    name, param_type, required = parts[0], parts[1], parts[2]
    options = parts[3].split(",") if len(parts) > 3 and parts[3] else None

    try:
        return ParameterSpec(
            name=name,
            type=param_type,
            required=required == "required",
            description=description.strip(),
            options=options if param_type == "select" else None,
        )
    except ValidationError as e:
        logger.warning(f"Ignoring invalid parameter '{definition}': {e.errors()[0]['msg']}")
        return None


def parse_script_metadata(
    file_path: Path | str,
    interpreters: dict[str, tuple[str, ...]] | None = None,
) -> ScriptDescriptor | None:
    """Parse the annotation block of a script file.

    Args:
        file_path: Script to parse
        interpreters: Suffix to interpreter mapping used to fill ``interpreter``

    Returns:
        ScriptDescriptor, or None if the file lacks a name or description
    """
    path = Path(file_path)
    interpreters = DEFAULT_INTERPRETERS if interpreters is None else interpreters

    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.error(f"Error reading script {path}: {e}")
        return None

    fields: dict[str, str] = {}
    params: list[ParameterSpec] = []
    seen_params: set[str] = set()

    for line in content.splitlines():
        trimmed = line.strip()
        match = None
        for pattern in ANNOTATION_PATTERNS:
            match = pattern.match(trimmed)
            if match:
                break
        if not match:
            continue

        tag, value = match.group(1), match.group(2).strip()
        if tag == "param":
            param = parse_param(value)
            if param and param.name not in seen_params:
                seen_params.add(param.name)
                params.append(param)
        elif tag in ("name", "description", "category"):
            fields[tag] = value
        elif tag == "context" and value in (ScriptContext.TERMINAL.value, ScriptContext.BROWSER.value):
            fields[tag] = value

    if not fields.get("name") or not fields.get("description"):
        return None

    command = interpreters.get(path.suffix.lower())
    return ScriptDescriptor(
        name=fields["name"],
        description=fields["description"],
        category=fields.get("category", "uncategorized"),
        context=fields.get("context", ScriptContext.TERMINAL.value),
        params=params,
        file_path=str(path.resolve()),
        file_name=path.name,
        interpreter=" ".join([Path(command[0]).name, *command[1:]]) if command else None,
    )


def discover_scripts(
    scripts_dir: Path | str,
    interpreters: dict[str, tuple[str, ...]] | None = None,
) -> list[ScriptDescriptor]:
    """Parse every annotated script directly inside scripts_dir.

    Raises:
        DiscoveryError: The directory does not exist or cannot be listed
    """
    root = Path(scripts_dir)
    interpreters = DEFAULT_INTERPRETERS if interpreters is None else interpreters

    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        raise DiscoveryError(f"Cannot read scripts directory {root}: {e}") from e

    scripts = []
    for entry in entries:
        if not entry.is_file() or entry.suffix.lower() not in interpreters:
            continue
        descriptor = parse_script_metadata(entry, interpreters)
        if descriptor:
            scripts.append(descriptor)

    return scripts


class ScriptCatalog:
    """Discovered scripts, rebuilt wholesale on refresh()."""

    def __init__(
        self,
        scripts_dir: Path | str,
        interpreters: dict[str, tuple[str, ...]] | None = None,
    ):
        self.scripts_dir = Path(scripts_dir)
        self._interpreters = interpreters
        self._scripts: tuple[ScriptDescriptor, ...] = ()
        self._lock = Lock()

    def refresh(self, strict: bool = False) -> list[ScriptDescriptor]:
        """Re-scan the scripts directory and replace the snapshot.

        Args:
            strict: Raise DiscoveryError instead of keeping the previous snapshot

        Returns:
            The current list of scripts
        """
        try:
            scripts = discover_scripts(self.scripts_dir, self._interpreters)
        except DiscoveryError as e:
            if strict:
                raise
            logger.error(f"{e}; keeping {len(self._scripts)} previously discovered scripts")
            return self.scripts()

        with self._lock:
            self._scripts = tuple(scripts)
        logger.info(f"Loaded {len(scripts)} scripts from {self.scripts_dir}")
        return list(scripts)

    def scripts(self) -> list[ScriptDescriptor]:
        with self._lock:
            return list(self._scripts)

    def _find(self, file_name: str) -> ScriptDescriptor | None:
        with self._lock:
            for script in self._scripts:
                if script.file_name == file_name:
                    return script
        return None

    def get(self, file_name: str) -> ScriptDescriptor:
        """Look up a script by file name, re-scanning once on a miss.

        Raises:
            UnknownScriptError: No script with that file name exists
        """
        script = self._find(file_name)
        if script is None:
            self.refresh()
            script = self._find(file_name)
        if script is None:
            raise UnknownScriptError(file_name)
        return script
