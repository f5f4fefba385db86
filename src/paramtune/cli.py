"""Command line interface for the paramtune driver."""
from __future__ import annotations

import argparse
import json
import math
import sys
from typing import Dict, List, Mapping, Sequence

import optuna
from pydantic import ValidationError

from .config import ParameterSpec, TunerConfig, load_parameter_payload, parse_parameter_specs
from .errors import ConfigurationError, TunerError
from .ingest import TrialResult
from .optimization import OptimizationResult, run_optimization
from .optimizer import build_distribution
from .runner import build_arguments


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="paramtune",
        description=(
            "Tune the parameters of a command-line objective. The objective is run once per"
            " iteration with one flag per parameter and must print a CSV table with a"
            " 'score' column. Place '--' before fixed arguments that start with a dash."
        ),
    )
    parser.add_argument(
        "params",
        help=(
            "JSON mapping of parameter name to a level count (categorical) or a"
            " [lower, upper] pair (numeric), or @path to a JSON/YAML file."
        ),
    )
    parser.add_argument("cmd", help="Command that runs one iteration of the objective.")
    parser.add_argument(
        "args",
        nargs="*",
        default=[],
        help="Fixed arguments passed to the command before the parameter flags.",
    )
    parser.add_argument(
        "-i",
        "--iter",
        type=int,
        default=100,
        help="Number of tuning iterations (default: 100).",
    )
    parser.add_argument(
        "-s",
        "--seed",
        type=int,
        default=0,
        help="Random number generator seed (default: 0).",
    )
    parser.add_argument(
        "-m",
        "--maximize",
        action="store_true",
        help="Maximize the objective's score instead of minimizing it.",
    )
    parser.add_argument(
        "--sampler",
        choices=("tpe", "random"),
        default="tpe",
        help="Per-parameter Optuna sampler (default: tpe).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Append the result log to this CSV file instead of standard output.",
    )
    parser.add_argument(
        "--workdir",
        help="Working directory for the objective command (default: current directory).",
    )
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for the objective; may be repeated.",
    )
    parser.add_argument(
        "--summarize",
        action="store_true",
        help="Only print a summary of the parameter space without running the objective.",
    )
    parser.add_argument(
        "--as-json",
        action="store_true",
        help="Print the validated parameter specs as JSON for downstream tooling.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Report every trial on stderr and keep Optuna's INFO logging.",
    )
    return parser.parse_args(argv)


def load_specs(source: str) -> Dict[str, ParameterSpec]:
    try:
        specs = parse_parameter_specs(load_parameter_payload(source))
        for name, spec in specs.items():
            build_distribution(name, spec)
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc
    return specs


def parse_env(items: Sequence[str]) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep:
            raise SystemExit(f"--env expects KEY=VALUE, got '{item}'")
        env[key] = value
    return env


def build_config(args: argparse.Namespace) -> TunerConfig:
    data = {
        "command": args.cmd,
        "args": list(args.args),
        "iterations": args.iter,
        "seed": args.seed,
        "maximize": args.maximize,
        "sampler": args.sampler,
        "output": args.output,
        "workdir": args.workdir,
        "env": parse_env(args.env),
    }
    try:
        return TunerConfig.model_validate(data)
    except ValidationError as exc:
        details = []
        for error in exc.errors(include_url=False):
            location = ".".join(str(loc) for loc in error["loc"])
            details.append(f"- {location or '<root>'}: {error['msg']}")
        raise SystemExit("Run configuration validation failed:\n" + "\n".join(details)) from exc


def summarize_specs(specs: Mapping[str, ParameterSpec], config: TunerConfig) -> str:
    lines: List[str] = [
        f"Command     : {config.command}",
        f"Iterations  : {config.iterations}",
        f"Seed        : {config.seed}",
        f"Direction   : {'maximize' if config.maximize else 'minimize'}",
        f"Sampler     : {config.sampler}",
        f"Result log  : {config.output or '<stdout>'}",
        f"Working dir : {config.workdir or '<current>'}",
        "Parameters  :",
    ]
    for name, spec in specs.items():
        lines.append(f"  - {name}: {spec.describe()}")
    placeholders = {name: "<value>" for name in specs}
    lines.append("Invocation  : " + " ".join([config.command, *build_arguments(config.args, placeholders)]))
    return "\n".join(lines)


def format_trial(trial: TrialResult) -> str:
    params = ", ".join(f"{name}={value}" for name, value in trial.parameters.items())
    score = "-" if trial.raw_score is None else f"{trial.raw_score:g}"
    return f"[trial {trial.iteration}] score={score} rows={len(trial.rows)} {params}"


def format_result(result: OptimizationResult) -> str:
    lines = [
        "Optimization completed",
        f"Trials executed: {result.trials_completed}",
        f"Rows logged: {result.rows_logged}",
    ]
    if result.best_iteration is None or result.best_raw_score is None:
        lines.append("Best trial: none (no scored rows)")
        return "\n".join(lines)
    best = result.best_raw_score
    lines.append(f"Best trial: {result.best_iteration}")
    lines.append(f"Best score: {best:g}" if math.isfinite(best) else f"Best score: {best}")
    lines.append("Best parameters:")
    lines.extend(f"  - {name}: {value}" for name, value in result.best_params.items())
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    if args.as_json and args.summarize:
        raise SystemExit("--as-json cannot be combined with --summarize")

    optuna.logging.set_verbosity(optuna.logging.INFO if args.verbose else optuna.logging.WARNING)

    specs = load_specs(args.params)
    config = build_config(args)

    if args.as_json:
        payload = {name: spec.model_dump(mode="json", exclude_none=True) for name, spec in specs.items()}
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    if args.summarize:
        print(summarize_specs(specs, config))
        return

    def report(trial: TrialResult) -> None:
        print(format_trial(trial), file=sys.stderr)

    try:
        result = run_optimization(specs, config, on_trial=report if args.verbose else None)
    except TunerError as exc:
        raise SystemExit(f"[abort] {exc}") from exc
    except OSError as exc:
        raise SystemExit(f"[abort] I/O error: {exc}") from exc

    print(format_result(result), file=sys.stderr)


if __name__ == "__main__":
    main()
