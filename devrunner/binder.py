"""Parameter binding: validate caller values and render positional arguments."""

from __future__ import annotations

import math
from typing import Any, Mapping

from devrunner.schemas import ParameterSpec, ParamType, ScriptDescriptor

BOOLEAN_STRINGS = {"true", "false"}


class ParameterError(Exception):
    """Raised when an execution request fails validation before launch."""

    pass


class MissingRequiredParameter(ParameterError):
    """Raised when a required parameter is absent, null, or empty."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Required parameter '{name}' is missing")


class InvalidParameterValue(ParameterError):
    """Raised when a value does not match its declared type."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid value for parameter '{name}': {reason}")


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _check_value(spec: ParameterSpec, value: Any) -> None:
    """Check a present value against the parameter's declared type."""
    if spec.type == ParamType.NUMBER:
        if isinstance(value, bool):
            raise InvalidParameterValue(spec.name, "expected a number, got a boolean")
        try:
            number = float(value.strip() if isinstance(value, str) else value)
        except (TypeError, ValueError):
            raise InvalidParameterValue(spec.name, f"expected a number, got {value!r}") from None
        if not math.isfinite(number):
            raise InvalidParameterValue(spec.name, f"expected a finite number, got {value!r}")

    elif spec.type == ParamType.BOOLEAN:
        if isinstance(value, bool):
            return
        if not (isinstance(value, str) and value.lower() in BOOLEAN_STRINGS):
            raise InvalidParameterValue(spec.name, f"expected true or false, got {value!r}")

    elif spec.type == ParamType.SELECT:
        if render_value(value) not in (spec.options or []):
            raise InvalidParameterValue(
                spec.name,
                f"{value!r} is not one of {', '.join(spec.options or [])}",
            )


def render_value(value: Any) -> str:
    """Render a parameter value the way scripts expect to read it from argv."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def bind(descriptor: ScriptDescriptor, raw_params: Mapping[str, Any] | None) -> list[str]:
    """Validate raw_params against the descriptor and build the argument list.

    Arguments are strictly positional, in the descriptor's declaration order.
    Optional parameters without a value contribute nothing, so later values
    shift left. Keys the descriptor does not declare are ignored.

    Args:
        descriptor: Script whose parameter contract to apply
        raw_params: Caller-supplied values keyed by parameter name

    Returns:
        Rendered positional argument list

    Raises:
        MissingRequiredParameter: A required value is absent, null, or empty
        InvalidParameterValue: A present value does not match its type
    """
    raw_params = raw_params or {}
    args: list[str] = []

    for spec in descriptor.params:
        value = raw_params.get(spec.name)
        if _is_blank(value):
            if spec.required:
                raise MissingRequiredParameter(spec.name)
            continue

        _check_value(spec, value)
        if isinstance(value, str):
            if spec.type == ParamType.BOOLEAN:
                value = value.lower()
            elif spec.type == ParamType.NUMBER:
                value = value.strip()
        args.append(render_value(value))

    return args
