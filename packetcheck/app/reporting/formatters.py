"""
Row formatters for CSV and JSON report files.

The output format is a closed set. Each variant implements the same
header / row / footer contract and is selected once, at construction
time, by `build_formatter`.
"""

from __future__ import annotations

import csv
import io
import json
from enum import Enum
from typing import Any, List, Sequence


class OutputFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


class RowFormatter:
    """Base contract shared by every output format."""

    extension: str = ""

    def __init__(self, columns: Sequence[str]) -> None:
        self.columns: List[str] = list(columns)

    def header(self) -> str:
        raise NotImplementedError

    def row(self, values: Sequence[Any], is_first_row: bool) -> str:
        raise NotImplementedError

    def footer(self) -> str:
        raise NotImplementedError


class CsvFormatter(RowFormatter):
    """Every cell quoted, one record per line."""

    extension = OutputFormat.CSV.value

    def _line(self, values: Sequence[Any]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow([_cell(v) for v in values])
        return buffer.getvalue()

    def header(self) -> str:
        return self._line(self.columns)

    def row(self, values: Sequence[Any], is_first_row: bool) -> str:
        return self._line(values)

    def footer(self) -> str:
        return ""


class JsonFormatter(RowFormatter):
    """A JSON array with one object per row, keyed by column name."""

    extension = OutputFormat.JSON.value

    def header(self) -> str:
        return "["

    def row(self, values: Sequence[Any], is_first_row: bool) -> str:
        record = {
            column: _cell(value)
            for column, value in zip(self.columns, values)
        }
        prefix = "\n  " if is_first_row else ",\n  "
        return prefix + json.dumps(record, ensure_ascii=False)

    def footer(self) -> str:
        return "\n]\n"


def build_formatter(
    output_format: OutputFormat, columns: Sequence[str]
) -> RowFormatter:
    if output_format is OutputFormat.CSV:
        return CsvFormatter(columns)
    if output_format is OutputFormat.JSON:
        return JsonFormatter(columns)
    raise ValueError(f"Unsupported output format: {output_format!r}")
