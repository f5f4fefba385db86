"""Exception hierarchy for fatal tuning conditions."""

from __future__ import annotations

from typing import Mapping


class TunerError(RuntimeError):
    """Base class for every condition that aborts a tuning run."""


class ConfigurationError(TunerError, ValueError):
    """Raised when the parameter payload or run options are invalid."""


class RangeError(ConfigurationError):
    """Raised when a search-space range cannot be constructed."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Invalid range for parameter '{name}': {message}")
        self.name = name


class SubprocessFailure(TunerError):
    """Raised when the objective process exits with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        iteration: int,
        timestamp: str,
        parameters: Mapping[str, str],
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.timestamp = timestamp
        self.parameters = dict(parameters)
        self.returncode = returncode


class ObjectiveLaunchError(SubprocessFailure):
    """Raised when the objective command could not be started at all."""


class ProtocolError(TunerError):
    """Raised when the objective output violates the CSV result protocol."""


class OptimizerError(TunerError):
    """Raised when a per-parameter optimizer rejects an ask or tell call."""


def describe_trial(iteration: int, timestamp: str | None, parameters: Mapping[str, str]) -> str:
    """Render the trial context appended to fatal diagnostics."""

    rendered = ", ".join(f"{name}={value}" for name, value in parameters.items())
    when = f" at {timestamp}" if timestamp else ""
    return f"on iteration {iteration}{when}. Parameters: {{{rendered}}}"


__all__ = [
    "ConfigurationError",
    "ObjectiveLaunchError",
    "OptimizerError",
    "ProtocolError",
    "RangeError",
    "SubprocessFailure",
    "TunerError",
    "describe_trial",
]
