"""Core optimization loop: ask, run, ingest, tell."""

from __future__ import annotations

import random
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from .config import ParameterSpec, TunerConfig
from .errors import OptimizerError, describe_trial
from .ingest import ResultIngester, ResultLogWriter, TrialResult
from .runner import TrialRunner
from .state import ParameterState, build_states, snapshot


class LoopState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class OptimizationResult:
    """Container for summarising the optimization run."""

    trials_completed: int
    rows_logged: int
    best_iteration: int | None = None
    best_params: Dict[str, str] = field(default_factory=dict)
    best_score: float | None = None
    best_raw_score: float | None = None


TrialCallback = Callable[[TrialResult], None]


class OptimizationLoop:
    """Strictly sequential driver over a fixed set of parameter states.

    The ask phase of iteration ``i + 1`` only starts after every optimizer has
    been told the score of iteration ``i``. Any exception moves the loop to
    ``ABORTED`` and propagates to the caller; there is no retry path.
    """

    def __init__(
        self,
        states: Mapping[str, ParameterState],
        runner: TrialRunner,
        ingester: ResultIngester,
        *,
        iterations: int,
        seed: int = 0,
        on_trial: TrialCallback | None = None,
    ) -> None:
        self.states = {name: states[name] for name in sorted(states)}
        self.runner = runner
        self.ingester = ingester
        self.iterations = iterations
        self.rng = random.Random(seed)
        self.state = LoopState.NOT_STARTED
        self.iteration = 0
        self._on_trial = on_trial
        self._result = OptimizationResult(trials_completed=0, rows_logged=0)

    def run(self) -> OptimizationResult:
        if self.state is not LoopState.NOT_STARTED:
            raise RuntimeError(f"Optimization loop cannot be restarted from state '{self.state.value}'")
        self.state = LoopState.RUNNING
        try:
            for iteration in range(self.iterations):
                self.iteration = iteration
                self._run_iteration(iteration)
        except BaseException:
            self.state = LoopState.ABORTED
            raise
        self.state = LoopState.COMPLETED
        return self._result

    def _run_iteration(self, iteration: int) -> None:
        for parameter in self.states.values():
            parameter.ask(self.rng)
        parameters = snapshot(self.states)

        output = self.runner.run(iteration, parameters)
        trial = self.ingester.ingest(output)

        for parameter in self.states.values():
            try:
                parameter.tell(trial.score)
            except OptimizerError as exc:
                raise OptimizerError(
                    f"{exc} " + describe_trial(iteration, trial.timestamp, parameters)
                ) from exc

        self._record(trial)
        if self._on_trial is not None:
            self._on_trial(trial)

    def _record(self, trial: TrialResult) -> None:
        result = self._result
        result.trials_completed += 1
        result.rows_logged += len(trial.rows)
        if trial.raw_score is None:
            return
        if result.best_score is None or trial.score < result.best_score:
            result.best_iteration = trial.iteration
            result.best_params = dict(trial.parameters)
            result.best_score = trial.score
            result.best_raw_score = trial.raw_score


def run_optimization(
    specs: Mapping[str, ParameterSpec],
    config: TunerConfig,
    *,
    log_stream: Any = None,
    error_stream: Any = None,
    on_trial: TrialCallback | None = None,
) -> OptimizationResult:
    """Execute the optimization loop for ``config`` over ``specs``.

    Every search space is built before the first trial so that an invalid
    range aborts with nothing launched. The result log goes to
    ``config.output`` when set, otherwise to ``log_stream`` (stdout by
    default).
    """

    states = build_states(specs, sampler=config.sampler)
    runner = TrialRunner(
        config.command,
        config.args,
        error_stream=error_stream,
        cwd=config.workdir,
        env=config.env,
    )

    if config.output:
        writer = ResultLogWriter.open(Path(config.output), states.keys())
    else:
        writer = ResultLogWriter(log_stream if log_stream is not None else sys.stdout, states.keys())

    with writer:
        loop = OptimizationLoop(
            states,
            runner,
            ResultIngester(writer, maximize=config.maximize),
            iterations=config.iterations,
            seed=config.seed,
            on_trial=on_trial,
        )
        return loop.run()


__all__ = [
    "LoopState",
    "OptimizationLoop",
    "OptimizationResult",
    "run_optimization",
]
