"""Objective output parsing, best-row selection and the result log."""

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, TextIO, Tuple

from .errors import ConfigurationError, ProtocolError
from .runner import TrialOutput

SCORE_FIELD = "score"


@dataclass(frozen=True)
class TrialResult:
    """Parsed outcome of one trial.

    ``score`` is the sign-adjusted value told to the optimizers (always
    minimised); ``raw_score`` is the objective's own value for the selected
    row, or ``None`` when no row carried a usable score.
    """

    iteration: int
    timestamp: str
    parameters: Dict[str, str]
    header: List[str]
    rows: List[List[str]]
    score: float
    raw_score: float | None


class ResultLogWriter:
    """Append-only CSV writer for the run's result log.

    The header is written once, before the first data row, and the stream is
    flushed after every record so that rows survive a later abort.
    """

    def __init__(
        self,
        stream: TextIO,
        param_names: Iterable[str],
        *,
        header_written: bool = False,
        existing_header: Sequence[str] | None = None,
    ) -> None:
        self._stream = stream
        self._owns_stream = False
        self.param_names = list(param_names)
        self._writer = csv.writer(stream, lineterminator="\n")
        self.header_written = header_written or existing_header is not None
        self.rows_written = 0
        self._existing_header = list(existing_header) if existing_header is not None else None

    @classmethod
    def open(cls, path: Path, param_names: Iterable[str]) -> "ResultLogWriter":
        """Append to ``path``, reusing the header of a non-empty existing log.

        The existing header must start with ``ts,iter`` and the same parameter
        columns; otherwise the rows of this run would be misaligned.
        """

        names = list(param_names)
        path.parent.mkdir(parents=True, exist_ok=True)
        existing = None
        if path.exists() and path.stat().st_size > 0:
            with path.open("r", newline="", encoding="utf-8") as fh:
                existing = next(csv.reader(fh), [])
            prefix = ["ts", "iter", *names]
            if existing[: len(prefix)] != prefix:
                raise ConfigurationError(
                    f"Result log {path} has header {existing!r}; expected it to start with {prefix!r}"
                )
        fh = path.open("a", newline="", encoding="utf-8")
        writer = cls(fh, names, existing_header=existing)
        writer._owns_stream = True
        return writer

    def write_header(self, objective_fields: Sequence[str]) -> None:
        header = ["ts", "iter", *self.param_names, *objective_fields]
        if self._existing_header is not None:
            existing, self._existing_header = self._existing_header, None
            if existing != header:
                raise ConfigurationError(
                    f"Result log header {existing!r} does not match objective output {header!r}"
                )
            return
        if self.header_written:
            return
        self._writer.writerow(header)
        self._stream.flush()
        self.header_written = True

    def write_row(
        self,
        timestamp: str,
        iteration: int,
        parameters: Mapping[str, str],
        fields: Sequence[str],
    ) -> None:
        if not self.header_written:
            raise RuntimeError("Result log header must be written before data rows.")
        self._writer.writerow(
            [timestamp, str(iteration), *(parameters[name] for name in self.param_names), *fields]
        )
        self._stream.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()

    def __enter__(self) -> "ResultLogWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def parse_table(stdout: bytes, *, context: str = "") -> Tuple[List[str], List[List[str]]]:
    """Split objective output into its header and data rows."""

    header, numbered = _read_table(stdout, context)
    return header, [row for _, row in numbered]


def _read_table(stdout: bytes, context: str) -> Tuple[List[str], List[Tuple[int, List[str]]]]:
    # Data rows are paired with the output line they start on.
    suffix = f" {context}" if context else ""
    try:
        text = stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Objective output is not valid UTF-8{suffix}") from exc

    records: List[Tuple[int, List[str]]] = []
    reader = csv.reader(io.StringIO(text, newline=""))
    start = 1
    try:
        for row in reader:
            if row:
                records.append((start, row))
            start = reader.line_num + 1
    except csv.Error as exc:
        raise ProtocolError(f"Objective output is not valid CSV ({exc}){suffix}") from exc

    if not records:
        raise ProtocolError(f"Objective output has no header; '{SCORE_FIELD}' column missing{suffix}")
    (_, header), rows = records[0], records[1:]
    for line, row in rows:
        if len(row) != len(header):
            raise ProtocolError(
                f"Objective output line {line} has {len(row)} fields, header has {len(header)}{suffix}"
            )
    return header, rows


def select_best(scores: Iterable[float], *, maximize: bool = False) -> Tuple[float, float | None]:
    """Return ``(min(sign * score), raw score of that row)``.

    NaN scores never win; with no usable score the trial selects ``+inf``.
    """

    sign = -1.0 if maximize else 1.0
    best = math.inf
    best_raw: float | None = None
    for score in scores:
        if math.isnan(score):
            continue
        candidate = sign * score
        if best_raw is None or candidate < best:
            best = candidate
            best_raw = score
    return best, best_raw


class ResultIngester:
    """Turn one trial's captured output into log rows and a single score."""

    def __init__(self, writer: ResultLogWriter, *, maximize: bool = False) -> None:
        self.writer = writer
        self.maximize = maximize

    def ingest(self, output: TrialOutput) -> TrialResult:
        context = output.describe()
        header, numbered = _read_table(output.stdout, context)
        rows = [row for _, row in numbered]
        try:
            score_index = header.index(SCORE_FIELD)
        except ValueError as exc:
            raise ProtocolError(
                f"Objective output header {header!r} has no '{SCORE_FIELD}' column {context}"
            ) from exc

        scores = [
            _parse_score(row[score_index], line, context)
            for line, row in numbered
        ]
        score, raw_score = select_best(scores, maximize=self.maximize)

        self.writer.write_header(header)
        for row in rows:
            self.writer.write_row(output.timestamp, output.iteration, output.parameters, row)

        return TrialResult(
            iteration=output.iteration,
            timestamp=output.timestamp,
            parameters=dict(output.parameters),
            header=header,
            rows=rows,
            score=score,
            raw_score=raw_score,
        )


def _parse_score(field: str, line: int, context: str) -> float:
    # float() also takes digit separators and surrounding whitespace.
    if "_" in field or field != field.strip():
        raise ProtocolError(f"Could not parse score {field!r} on output line {line} {context}")
    try:
        return float(field)
    except ValueError as exc:
        raise ProtocolError(
            f"Could not parse score {field!r} on output line {line} {context}"
        ) from exc


__all__ = [
    "ResultIngester",
    "ResultLogWriter",
    "SCORE_FIELD",
    "TrialResult",
    "parse_table",
    "select_best",
]
