"""Library for formatting output."""

from abc import ABC, abstractmethod
import json
import sys
from typing import Any, Generator, TextIO

import yaml


PADDING = 4


def column_format_string(rows: list[list[str]]) -> str:
    """Produce a format string wide enough for the longest value of each column."""
    widths = [max(len(str(value)) for value in column) for column in zip(*rows)]
    return "".join(f"{{:{width + PADDING}}}" for width in widths)


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield the header and rows aligned in columns, without trailing space."""
    data = [headers] + rows
    format_string = column_format_string(data)
    if format_string:
        for row in data:
            yield format_string.format(*[str(x) for x in row]).rstrip()


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = [[str(row.get(key, "")) for key in keys] for row in data]
        cols = [col.upper() for col in keys]
        yield from format_columns(cols, rows)

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        for result in self.format(data):
            print(result, file=file)


class StructFormatter(ABC):
    """A formatter that prints whole objects."""

    @abstractmethod
    def format(self, data: list[dict[str, Any]]) -> str:
        """Format the objects."""

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Print the objects."""
        print(self.format(data), end="", file=file)


class YamlFormatter(StructFormatter):
    """A formatter that prints each object as a yaml document."""

    def format(self, data: list[dict[str, Any]]) -> str:
        """Format the objects."""
        return yaml.dump_all(data, sort_keys=False, explicit_start=True)


class JsonFormatter(StructFormatter):
    """A formatter that prints a single object or a list as json."""

    def format(self, data: list[dict[str, Any]]) -> str:
        """Format the objects."""
        value: Any = data[0] if len(data) == 1 else data
        return json.dumps(value, indent=4, sort_keys=False) + "\n"


def struct_formatter(output: str) -> StructFormatter:
    """Return the formatter for an --output flag value."""
    if output == "json":
        return JsonFormatter()
    return YamlFormatter()
