"""Per-parameter sequential optimizers backed by Optuna studies."""

from __future__ import annotations

import math
import random
from abc import ABC, abstractmethod
from typing import List, Tuple

import optuna
from optuna.distributions import BaseDistribution, CategoricalDistribution, FloatDistribution
from optuna.trial import TrialState

from .config import ParameterSpec
from .errors import OptimizerError, RangeError


class ParameterOptimizer(ABC):
    """Ask/tell contract for a single parameter's search space.

    ``ask`` draws every bit of randomness it needs from the generator it is
    handed, so a fixed seed and a fixed call order reproduce the same
    proposals. ``tell`` records one ``(value, score)`` observation; scores are
    always minimised.
    """

    @abstractmethod
    def ask(self, rng: random.Random) -> float:
        """Return the next value to evaluate."""

    @abstractmethod
    def tell(self, value: float, score: float) -> None:
        """Record the observed score for ``value``."""


def build_distribution(name: str, spec: ParameterSpec) -> BaseDistribution:
    """Construct the search-space range for ``spec``."""

    if spec.is_categorical:
        levels = spec.levels or 0
        if levels < 1:
            raise RangeError(name, "categorical parameter requires at least one level")
        return CategoricalDistribution(choices=tuple(range(levels)))

    lower = float(spec.lower)  # type: ignore[arg-type]
    upper = float(spec.upper)  # type: ignore[arg-type]
    if not lower < upper:
        raise RangeError(name, f"lower bound {lower!r} must be less than upper bound {upper!r}")
    return FloatDistribution(lower, upper)


def build_sampler(sampler_name: str, seed: int | None) -> optuna.samplers.BaseSampler:
    sampler_name = sampler_name.lower()
    if sampler_name == "tpe":
        return optuna.samplers.TPESampler(seed=seed)
    if sampler_name == "random":
        return optuna.samplers.RandomSampler(seed=seed)
    raise ValueError(f"Unsupported sampler: {sampler_name}")


class OptunaParameterOptimizer(ParameterOptimizer):
    """One in-memory Optuna study dedicated to a single parameter.

    Every ask installs a freshly seeded sampler on the study. The seed is drawn
    from the caller's generator, which keeps the whole run reproducible even
    though Optuna samplers own their random state.
    """

    def __init__(self, name: str, spec: ParameterSpec, *, sampler: str = "tpe") -> None:
        self.name = name
        self.spec = spec
        self._distribution = build_distribution(name, spec)
        self._sampler_name = sampler
        self._study = optuna.create_study(
            study_name=f"paramtune-{name}",
            direction="minimize",
            sampler=build_sampler(sampler, seed=None),
        )
        self._pending: optuna.trial.Trial | None = None

    def ask(self, rng: random.Random) -> float:
        if self._pending is not None:
            self._study.tell(self._pending, state=TrialState.FAIL)
            self._pending = None
        self._study.sampler = build_sampler(self._sampler_name, seed=rng.getrandbits(32))
        trial = self._study.ask({self.name: self._distribution})
        self._pending = trial
        return float(trial.params[self.name])

    def tell(self, value: float, score: float) -> None:
        if math.isnan(score):
            raise OptimizerError(f"Score for parameter '{self.name}' must not be NaN")
        external = self._to_external(value)

        pending, self._pending = self._pending, None
        if pending is not None and pending.params[self.name] == external:
            self._study.tell(pending, score)
            return
        if pending is not None:
            self._study.tell(pending, state=TrialState.FAIL)
        self._study.add_trial(
            optuna.trial.create_trial(
                params={self.name: external},
                distributions={self.name: self._distribution},
                value=score,
            )
        )

    def history(self) -> List[Tuple[float, float]]:
        """Return every completed ``(value, score)`` observation in order."""

        trials = self._study.get_trials(deepcopy=False, states=(TrialState.COMPLETE,))
        return [(float(trial.params[self.name]), float(trial.value)) for trial in trials]

    def _to_external(self, value: float) -> int | float:
        if math.isnan(value):
            raise OptimizerError(f"Value for parameter '{self.name}' must not be NaN")
        if self.spec.is_categorical:
            level = int(value)
            if level != value or not 0 <= level < (self.spec.levels or 0):
                raise OptimizerError(
                    f"Value {value!r} is not a level of categorical parameter '{self.name}'"
                )
            return level
        if not self.spec.lower <= value <= self.spec.upper:  # type: ignore[operator]
            raise OptimizerError(
                f"Value {value!r} is outside the range of parameter '{self.name}'"
            )
        return float(value)


def create_optimizer(name: str, spec: ParameterSpec, *, sampler: str = "tpe") -> ParameterOptimizer:
    return OptunaParameterOptimizer(name, spec, sampler=sampler)


__all__ = [
    "OptunaParameterOptimizer",
    "ParameterOptimizer",
    "build_distribution",
    "build_sampler",
    "create_optimizer",
]
