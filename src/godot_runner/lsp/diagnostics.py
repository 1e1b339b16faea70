from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

SEVERITY_ERROR = 1
SEVERITY_WARNING = 2


@dataclass(frozen=True, slots=True)
class DiagnosticRecord:
    """One reported issue with 1-based line and column.

    Example:
        ```python
        record = DiagnosticRecord(line=5, column=10, message="Unexpected token", severity="error")
        ```
    """

    line: int
    column: int
    message: str
    severity: Literal["error", "warning"]


@dataclass(frozen=True, slots=True)
class DiagnosticReport:
    """Diagnostics split into errors and warnings, each in input order.

    Example:
        ```python
        report = DiagnosticReport()
        assert report.valid
        ```
    """

    errors: list[DiagnosticRecord] = field(default_factory=list)
    warnings: list[DiagnosticRecord] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        """Return True when no errors were reported.

        Example:
            ```python
            ok = report.valid
            ```
        """
        return not self.errors


def _start_position(raw: dict[str, Any]) -> tuple[int, int] | None:
    """Extract the 0-based start line/column of a raw diagnostic.

    Example:
        ```python
        pos = _start_position({"range": {"start": {"line": 4, "column": 9}}})  # (4, 9)
        ```
    """
    rng = raw.get("range")
    start = rng.get("start") if isinstance(rng, dict) else None
    if not isinstance(start, dict):
        return None
    line = start.get("line")
    column = start.get("column", start.get("character"))
    if not isinstance(line, int) or not isinstance(column, int):
        return None
    return line, column


def translate_diagnostics(raw_diagnostics: Iterable[Any]) -> DiagnosticReport:
    """Classify raw severity-coded diagnostics into errors and warnings.

    Severity 1 becomes an error and 2 a warning; information (3) and hint (4)
    are dropped, as are records without a usable start position.

    Example:
        ```python
        report = translate_diagnostics(
            [{"range": {"start": {"line": 4, "column": 9}}, "message": "x", "severity": 1}]
        )
        # report.errors == [DiagnosticRecord(line=5, column=10, message="x", severity="error")]
        ```
    """
    report = DiagnosticReport()
    for raw in raw_diagnostics:
        if not isinstance(raw, dict):
            continue
        severity = raw.get("severity")
        if severity not in (SEVERITY_ERROR, SEVERITY_WARNING):
            continue
        position = _start_position(raw)
        if position is None:
            continue
        line, column = position
        message = str(raw.get("message", ""))
        if severity == SEVERITY_ERROR:
            report.errors.append(DiagnosticRecord(line + 1, column + 1, message, "error"))
        else:
            report.warnings.append(DiagnosticRecord(line + 1, column + 1, message, "warning"))
    return report
