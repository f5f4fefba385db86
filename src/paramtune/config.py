"""Parameter payload parsing and run configuration models."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError


class ParameterSpec(BaseModel):
    """Declarative description of one tunable parameter."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["categorical", "numeric"]
    levels: int | None = Field(default=None, strict=True, ge=0)
    lower: float | None = None
    upper: float | None = None

    @model_validator(mode="after")
    def validate_kind(self) -> "ParameterSpec":
        if self.kind == "categorical":
            if self.levels is None:
                raise ValueError("categorical parameter requires a level count")
            if self.lower is not None or self.upper is not None:
                raise ValueError("categorical parameter does not accept bounds")
        else:
            if self.lower is None or self.upper is None:
                raise ValueError("numeric parameter requires lower and upper bounds")
            if self.levels is not None:
                raise ValueError("numeric parameter does not accept a level count")
            if not (math.isfinite(self.lower) and math.isfinite(self.upper)):
                raise ValueError("numeric parameter bounds must be finite")
        return self

    @property
    def is_categorical(self) -> bool:
        return self.kind == "categorical"

    def describe(self) -> str:
        if self.is_categorical:
            return f"categorical ({self.levels} levels)"
        return f"numeric [{self.lower!r}, {self.upper!r}]"


class TunerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command: str
    args: List[str] = Field(default_factory=list)
    iterations: int = 100
    seed: int = 0
    maximize: bool = False
    sampler: str = "tpe"
    output: str | None = None
    workdir: str | None = None
    env: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_run(self) -> "TunerConfig":
        if not self.command.strip():
            raise ValueError("command must be a non-empty string")
        if self.iterations <= 0:
            raise ValueError("iterations must be a positive integer")
        if self.seed < 0:
            raise ValueError("seed must be a non-negative integer")
        self.sampler = self.sampler.lower().strip()
        if self.sampler not in {"tpe", "random"}:
            raise ValueError("sampler must be 'tpe' or 'random'")
        if self.output is not None and not self.output.strip():
            raise ValueError("output must be a non-empty path when provided")
        if self.workdir is not None and not Path(self.workdir).is_dir():
            raise ValueError(f"workdir '{self.workdir}' is not a directory")
        for key in self.env:
            if not key or "=" in key:
                raise ValueError(f"invalid environment variable name '{key}'")
        return self


def load_parameter_payload(source: str) -> Mapping[str, Any]:
    """Decode the parameter payload given inline as JSON or as ``@path``."""

    if source.startswith("@"):
        path = Path(source[1:])
        if not path.exists():
            raise ConfigurationError(f"Parameter file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            try:
                if path.suffix.lower() in {".yaml", ".yml"}:
                    data = yaml.safe_load(fh)
                else:
                    data = json.load(fh)
            except (yaml.YAMLError, json.JSONDecodeError) as exc:
                raise ConfigurationError(f"Could not parse parameter file {path}: {exc}") from exc
    else:
        try:
            data = json.loads(source)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Parameter payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Parameter payload root must be a mapping of name to spec.")
    return data


def parse_parameter_specs(payload: Mapping[str, Any]) -> Dict[str, ParameterSpec]:
    """Validate every payload entry and return the specs sorted by name."""

    if not payload:
        raise ConfigurationError("At least one parameter must be declared.")

    specs: Dict[str, ParameterSpec] = {}
    details: List[str] = []
    for name in sorted(payload, key=str):
        problem = _check_name(name)
        if problem is not None:
            details.append(f"- {name!r}: {problem}")
            continue
        try:
            specs[name] = ParameterSpec.model_validate(_normalise_entry(payload[name]))
        except ValueError as exc:
            details.extend(_format_errors(name, exc))

    if details:
        raise ConfigurationError("Parameter validation failed:\n" + "\n".join(details))
    return specs


def _check_name(name: Any) -> str | None:
    if not isinstance(name, str) or not name:
        return "parameter names must be non-empty strings"
    if name.startswith("-"):
        return "parameter names must not start with '-'"
    if any(ch.isspace() for ch in name):
        return "parameter names must not contain whitespace"
    return None


def _normalise_entry(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, bool):
        raise ValueError("expected a level count or a [lower, upper] pair, got a boolean")
    if isinstance(raw, int):
        return {"kind": "categorical", "levels": raw}
    if isinstance(raw, (list, tuple)):
        return _numeric_pair(raw)
    if isinstance(raw, Mapping):
        if len(raw) == 1 and "Categorical" in raw:
            return {"kind": "categorical", "levels": raw["Categorical"]}
        if len(raw) == 1 and "Numeric" in raw:
            value = raw["Numeric"]
            if not isinstance(value, (list, tuple)):
                raise ValueError("Numeric entries must be a [lower, upper] pair")
            return _numeric_pair(value)
        if "type" in raw:
            return _explicit_entry(raw)
        if "kind" in raw:
            # Shape printed by ``--as-json``.
            return dict(raw)
    raise ValueError(
        "expected a level count, a [lower, upper] pair, or a mapping with a 'type' or 'kind' key"
    )


def _numeric_pair(values: Any) -> Dict[str, Any]:
    if len(values) != 2:
        raise ValueError("numeric parameter requires exactly two bounds")
    if any(isinstance(value, bool) for value in values):
        raise ValueError("numeric bounds must be numbers")
    return {"kind": "numeric", "lower": values[0], "upper": values[1]}


def _explicit_entry(raw: Mapping[str, Any]) -> Dict[str, Any]:
    entry_type = str(raw["type"]).lower().strip()
    rest = {key: value for key, value in raw.items() if key != "type"}
    if entry_type == "categorical":
        return {"kind": "categorical", **rest}
    if entry_type in {"numeric", "float"}:
        lower = rest.pop("low", rest.pop("lower", None))
        upper = rest.pop("high", rest.pop("upper", None))
        return {"kind": "numeric", "lower": lower, "upper": upper, **rest}
    raise ValueError("parameter type must be 'categorical' or 'numeric'")


def _format_errors(name: str, exc: ValueError) -> List[str]:
    if isinstance(exc, ValidationError):
        details = []
        for error in exc.errors(include_url=False):
            location = ".".join(str(loc) for loc in error["loc"])
            suffix = f".{location}" if location else ""
            details.append(f"- {name}{suffix}: {error['msg']}")
        return details
    return [f"- {name}: {exc}"]


__all__ = [
    "ParameterSpec",
    "TunerConfig",
    "load_parameter_payload",
    "parse_parameter_specs",
]
