"""Binding between a parameter spec, its optimizer and the proposed value."""

from __future__ import annotations

import random
from typing import Dict, Mapping

from .config import ParameterSpec
from .errors import OptimizerError
from .optimizer import ParameterOptimizer, create_optimizer


class ParameterState:
    """Tracks the value currently proposed for one parameter."""

    def __init__(self, name: str, spec: ParameterSpec, optimizer: ParameterOptimizer) -> None:
        self.name = name
        self.spec = spec
        self.optimizer = optimizer
        self.current_value: float | None = None

    @classmethod
    def from_spec(cls, name: str, spec: ParameterSpec, *, sampler: str = "tpe") -> "ParameterState":
        return cls(name, spec, create_optimizer(name, spec, sampler=sampler))

    @property
    def is_categorical(self) -> bool:
        return self.spec.is_categorical

    def ask(self, rng: random.Random) -> float:
        try:
            value = float(self.optimizer.ask(rng))
        except Exception as exc:
            raise OptimizerError(f"ask failed for parameter '{self.name}': {exc}") from exc
        self.current_value = value
        return value

    def tell(self, score: float) -> None:
        if self.current_value is None:
            raise OptimizerError(f"tell called before ask for parameter '{self.name}'")
        try:
            self.optimizer.tell(self.current_value, score)
        except OptimizerError:
            raise
        except Exception as exc:
            raise OptimizerError(f"tell failed for parameter '{self.name}': {exc}") from exc

    def get_value(self) -> str:
        """Render the current value as a command-line argument."""

        if self.current_value is None:
            raise OptimizerError(f"parameter '{self.name}' has no proposed value yet")
        if self.is_categorical:
            return str(int(self.current_value))
        return repr(float(self.current_value))


def build_states(specs: Mapping[str, ParameterSpec], *, sampler: str = "tpe") -> Dict[str, ParameterState]:
    """Create one state per parameter, ordered by name.

    Every search-space range is constructed here, so an invalid range aborts
    before any trial is launched.
    """

    return {name: ParameterState.from_spec(name, specs[name], sampler=sampler) for name in sorted(specs)}


def snapshot(states: Mapping[str, ParameterState]) -> Dict[str, str]:
    return {name: state.get_value() for name, state in states.items()}


__all__ = ["ParameterState", "build_states", "snapshot"]
