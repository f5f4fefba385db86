"""Objective process invocation."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Dict, List, Mapping, Sequence

from .errors import ObjectiveLaunchError, SubprocessFailure, describe_trial


@dataclass(frozen=True)
class TrialOutput:
    """Captured outcome of one objective invocation."""

    iteration: int
    timestamp: str
    parameters: Dict[str, str]
    argv: List[str]
    returncode: int
    stdout: bytes
    stderr: bytes

    def describe(self) -> str:
        return describe_trial(self.iteration, self.timestamp, self.parameters)


def flag_for(name: str) -> str:
    """Return ``-x`` for single-character names and ``--name`` otherwise."""

    return f"-{name}" if len(name) == 1 else f"--{name}"


def build_arguments(fixed_args: Sequence[str], parameters: Mapping[str, str]) -> List[str]:
    arguments = list(fixed_args)
    for name in sorted(parameters):
        arguments.extend([flag_for(name), parameters[name]])
    return arguments


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class TrialRunner:
    """Run the objective command once per iteration and capture its output."""

    def __init__(
        self,
        command: str,
        fixed_args: Sequence[str] = (),
        *,
        error_stream: BinaryIO | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.command = command
        self.fixed_args = list(fixed_args)
        self._error_stream = error_stream
        self._cwd = cwd
        self._env = dict(env) if env else None

    def run(self, iteration: int, parameters: Mapping[str, str]) -> TrialOutput:
        argv = [self.command, *build_arguments(self.fixed_args, parameters)]
        env = {**os.environ, **self._env} if self._env else None
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                check=False,
                cwd=self._cwd,
                env=env,
            )
        except OSError as exc:
            timestamp = utc_timestamp()
            raise ObjectiveLaunchError(
                f"Could not start objective '{self.command}': {exc} "
                + describe_trial(iteration, timestamp, parameters),
                iteration=iteration,
                timestamp=timestamp,
                parameters=parameters,
            ) from exc

        self._forward_stderr(completed.stderr)
        output = TrialOutput(
            iteration=iteration,
            timestamp=utc_timestamp(),
            parameters=dict(parameters),
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if completed.returncode != 0:
            raise SubprocessFailure(
                f"Objective exited with status {completed.returncode} " + output.describe(),
                iteration=iteration,
                timestamp=output.timestamp,
                parameters=parameters,
                returncode=completed.returncode,
            )
        return output

    def _forward_stderr(self, data: bytes) -> None:
        if self._error_stream is not None:
            stream = self._error_stream
        else:
            stream = getattr(sys.stderr, "buffer", None)
            if stream is None:
                # Text-only replacement streams (e.g. redirect_stderr to StringIO).
                sys.stderr.write(data.decode("utf-8", errors="replace"))
                sys.stderr.flush()
                return
            sys.stderr.flush()
        if data:
            stream.write(data)
        stream.flush()


__all__ = ["TrialOutput", "TrialRunner", "build_arguments", "flag_for", "utc_timestamp"]
