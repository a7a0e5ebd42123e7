"""Readable log output: coloured levels and flattened, indented attributes.

Structured attributes travel on a record as ``extra={"attrs": {...}}``;
nested mappings act as groups and are flattened into dotted keys.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, TextIO

from termcolor import colored

_LEVELS = {
    logging.DEBUG: ("DEBUG", "magenta"),
    logging.INFO: ("INFO", "green"),
    logging.WARNING: ("WARN", "yellow"),
    logging.ERROR: ("ERROR", "red"),
}

Attrs = Mapping[str, Any] | Iterable[tuple[str, Any]]


def _colors_enabled() -> bool:
    if "NO_COLOR" in os.environ or "ANSI_COLORS_DISABLED" in os.environ:
        return False
    if "FORCE_COLOR" in os.environ:
        return True
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _paint(text: str, color: str) -> str:
    return colored(text, color, force_color=True) if _colors_enabled() else text


def _pairs(attrs: Attrs | None) -> list[tuple[str, Any]]:
    if attrs is None:
        return []
    if isinstance(attrs, Mapping):
        return list(attrs.items())
    return list(attrs)


def flatten_attrs(prefix: str, attrs: Attrs | None) -> list[tuple[str, Any]]:
    """Flatten attributes into ``(dotted_key, value)`` pairs under *prefix*."""
    out: list[tuple[str, Any]] = []
    for key, value in _pairs(attrs):
        if isinstance(value, Mapping):
            nested = prefix
            if key:
                nested = f"{nested}.{key}" if nested else key
            out.extend(flatten_attrs(nested, value))
            continue
        if prefix and key:
            full_key = f"{prefix}.{key}"
        elif prefix:
            full_key = prefix
        else:
            full_key = key or "<root>"
        out.append((full_key, value))
    return out


def _unwrap(err: BaseException) -> BaseException | None:
    if err.__cause__ is not None:
        return err.__cause__
    if not err.__suppress_context__:
        return err.__context__
    return None


def format_error_chain(err: BaseException | None) -> list[str]:
    """Render an exception and the exceptions behind it, one indented line each."""
    if err is None:
        return [""]
    lines: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = err
    level = 0
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        prefix = ""
        if level > 0:
            prefix = "  " * (level - 1) + _paint("? ", "yellow")
        message = str(current) or type(current).__name__
        lines.append(prefix + _paint(message, "white"))
        current = _unwrap(current)
        level += 1
    return lines


def format_attr_value(value: Any) -> list[str]:
    """Render an attribute value as one or more output lines."""
    if isinstance(value, BaseException):
        return format_error_chain(value)
    text = str(value).strip()
    if not text:
        return [""]
    return [_paint(part, "white") for part in text.split("\n")]


class PrettyHandler(logging.Handler):
    """Logging handler printing records in a compact, human-friendly layout."""

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__()
        self.stream = stream if stream is not None else sys.stdout
        self._attrs: list[tuple[str, Any]] = []
        self._groups: list[str] = []

    def _clone(self) -> PrettyHandler:
        clone = PrettyHandler(self.stream)
        clone.setLevel(self.level)
        clone._attrs = list(self._attrs)
        clone._groups = list(self._groups)
        return clone

    def with_attrs(self, attrs: Attrs) -> PrettyHandler:
        """Return a handler that adds *attrs* to every record."""
        pairs = _pairs(attrs)
        if not pairs:
            return self
        clone = self._clone()
        clone._attrs.extend(pairs)
        return clone

    def with_group(self, name: str) -> PrettyHandler:
        """Return a handler that nests attribute keys under *name*."""
        if not name:
            return self
        clone = self._clone()
        clone._groups.append(name)
        return clone

    def format_record(self, record: logging.LogRecord) -> str:
        """Render *record* as text, without the trailing newline."""
        level_name, color = _LEVELS.get(record.levelno, (record.levelname, None))
        level = level_name + ":"
        if color is not None:
            level = _paint(level, color)

        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        head = f"[{stamp}.{int(record.msecs):03d}] {level} {_paint(record.getMessage(), 'white')}"

        prefix = ".".join(self._groups)
        pairs = flatten_attrs(prefix, self._attrs)
        pairs.extend(flatten_attrs(prefix, getattr(record, "attrs", None)))
        if not pairs:
            return head

        lines = [head + " {"]
        for key, value in pairs:
            for index, text in enumerate(format_attr_value(value)):
                if index == 0:
                    lines.append(f"  {_paint(key, 'cyan')}: {text}")
                else:
                    lines.append(f"    {text}")
        lines.append("}")
        return "\n".join(lines)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(self.format_record(record) + "\n")
            self.stream.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def setup_logging(stream: TextIO | None = None) -> logging.Logger:
    """Configure the application logger to print through a PrettyHandler at DEBUG."""
    logger = logging.getLogger("msgstore")
    for old in list(logger.handlers):
        logger.removeHandler(old)
    logger.addHandler(PrettyHandler(stream))
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger