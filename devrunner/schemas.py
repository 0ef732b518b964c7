"""Pydantic schemas and execution records for devrunner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ParamType(str, Enum):
    """Declared type of a script parameter."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


class ScriptContext(str, Enum):
    """Where a script is meant to run."""

    TERMINAL = "terminal"
    BROWSER = "browser"


ParamValue = Union[str, int, float, bool]


# --- Script metadata ---


class ParameterSpec(BaseModel):
    """Declared shape of one input a script accepts."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: ParamType = ParamType.STRING
    required: bool = False
    description: str = ""
    options: list[str] | None = None
    default: ParamValue | None = None

    @model_validator(mode="after")
    def _check_contract(self) -> "ParameterSpec":
        if self.type == ParamType.SELECT and not self.options:
            raise ValueError(f"select parameter '{self.name}' needs at least one option")
        if self.required and self.default is not None:
            raise ValueError(f"required parameter '{self.name}' cannot declare a default")
        return self


class ScriptDescriptor(BaseModel):
    """Parsed metadata describing one runnable utility script."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str
    category: str = "uncategorized"
    context: ScriptContext = ScriptContext.TERMINAL
    params: list[ParameterSpec] = Field(default_factory=list)
    file_path: str = Field(..., alias="filePath")
    file_name: str = Field(..., alias="fileName")
    interpreter: str | None = None

    @model_validator(mode="after")
    def _check_unique_params(self) -> "ScriptDescriptor":
        names = [p.name for p in self.params]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate parameter names: {sorted(duplicates)}")
        return self


# --- Request/Response Schemas ---


class ExecuteRequest(BaseModel):
    """Body of POST /api/execute/{fileName}."""

    model_config = ConfigDict(populate_by_name=True)

    params: dict[str, ParamValue | None] = Field(default_factory=dict)
    working_dir: str | None = Field(default=None, alias="workingDir")


class ErrorResponse(BaseModel):
    """Error response for unhandled failures."""

    detail: str
    error_code: str | None = None


class ExecutionsResponse(BaseModel):
    """Currently running executions."""

    executions: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = "healthy"
    scripts: int = 0
    active_executions: int = 0


# --- Execution records ---


class ChunkOrigin(str, Enum):
    """Which stream an output chunk came from."""

    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


@dataclass(frozen=True)
class OutputChunk:
    """One unit of decoded output text."""

    origin: ChunkOrigin
    text: str

    @classmethod
    def system(cls, text: str) -> "OutputChunk":
        return cls(origin=ChunkOrigin.SYSTEM, text=text)


class OutcomeKind(str, Enum):
    """Terminal classification of one execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal state of one execution."""

    kind: OutcomeKind
    exit_code: int | None = None
    error: str | None = None

    @classmethod
    def completed(cls, exit_code: int) -> "ExecutionOutcome":
        return cls(kind=OutcomeKind.COMPLETED, exit_code=exit_code)

    @classmethod
    def failed(cls, error: str) -> "ExecutionOutcome":
        return cls(kind=OutcomeKind.FAILED, error=error)

    @classmethod
    def cancelled(cls) -> "ExecutionOutcome":
        return cls(kind=OutcomeKind.CANCELLED)
