"""Library for formatting command output."""

from abc import ABC, abstractmethod
from collections.abc import Generator
import json
import sys
from typing import Any, TextIO

import yaml

PADDING = 4
EMPTY = "-"


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Generate the rows aligned in columns as wide as their widest value."""
    data = [headers] + rows
    widths = [max(len(row[i]) for row in data) for i in range(len(headers))]
    for row in data:
        yield "".join(
            value.ljust(width + PADDING) for value, width in zip(row, widths)
        ).rstrip()


class Formatter(ABC):
    """A formatter for the records printed by a command."""

    @abstractmethod
    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the records."""

    def print(self, data: list[dict[str, Any]], file: TextIO | None = None) -> None:
        """Output the records, to stdout unless another file is given."""
        for line in self.format(data):
            print(line, file=file or sys.stdout)


class PrintFormatter(Formatter):
    """A formatter that prints human readable columns."""

    def __init__(self, keys: list[str]) -> None:
        """Initialize the PrintFormatter with the keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the records as columns, one record per row."""
        if not data:
            return
        rows = [[str(record.get(key) or EMPTY) for key in self._keys] for record in data]
        yield from format_columns([key.upper() for key in self._keys], rows)


class YamlFormatter(Formatter):
    """A formatter that prints the records as a yaml list."""

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the records."""
        yield yaml.dump(data, sort_keys=False, explicit_start=True).rstrip("\n")


class JsonFormatter(Formatter):
    """A formatter that prints the records as a json list."""

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the records."""
        yield json.dumps(data, indent=4, sort_keys=False)


FORMATTERS = ["text", "yaml", "json"]


def get_formatter(output: str, keys: list[str]) -> Formatter:
    """Return the formatter for the output flag."""
    if output == "yaml":
        return YamlFormatter()
    if output == "json":
        return JsonFormatter()
    return PrintFormatter(keys)
