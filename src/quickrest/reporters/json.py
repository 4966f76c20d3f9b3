"""JSON reporter for machine-readable output."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from quickrest.core.result import Report


class JSONReporter:
    """Formats a Report as JSON.

    Includes the summary, both sequences, the minimized trace, coverage and
    the full candidate log so the search and shrink can be visualized.
    """

    def __init__(self, indent: int | None = 2, include_candidates: bool = True) -> None:
        self.indent = indent
        self.include_candidates = include_candidates

    def report(self, report: Report) -> str:
        return json.dumps(self._to_dict(report), indent=self.indent, default=str)

    def save(self, report: Report, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.report(report))
        return path

    def _to_dict(self, report: Report) -> dict[str, Any]:
        data = report.to_dict()
        if report.original_trace is not None:
            data["original_trace"] = report.original_trace.to_dict()
        if not self.include_candidates:
            data.pop("candidates", None)
        return data
