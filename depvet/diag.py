"""Diagnostic building blocks shared by the checks."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum, IntEnum, StrEnum
from typing import Any, Iterable, Iterator

FileId = int


class Severity(IntEnum):
    """How serious a diagnostic is, ordered from least to most severe."""

    HELP = 1
    NOTE = 2
    WARNING = 3
    ERROR = 4
    BUG = 5

    @classmethod
    def from_lint_level(cls, level: Any) -> Severity:
        """Map a lint level (or its name) onto the severity it produces."""
        name = str(getattr(level, "value", level)).lower()
        try:
            return _LINT_SEVERITY[name]
        except KeyError:
            raise ValueError(f"unknown lint level '{level}'") from None


_LINT_SEVERITY = {
    "allow": Severity.NOTE,
    "warn": Severity.WARNING,
    "deny": Severity.ERROR,
}


class Check(StrEnum):
    """The check a diagnostic was produced by."""

    ADVISORIES = "advisories"
    BANS = "bans"
    LICENSES = "licenses"
    SOURCES = "sources"


class LabelStyle(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


def _bounds(span: Any) -> tuple[int, int]:
    if isinstance(span, range):
        return span.start, span.stop
    if isinstance(span, (tuple, list)) and len(span) == 2:
        return int(span[0]), int(span[1])
    if hasattr(span, "start") and hasattr(span, "end"):
        return int(span.start), int(span.end)
    raise TypeError(f"cannot use {span!r} as a span")


@dataclass(frozen=True)
class Label:
    """A span of a file annotated with an optional message."""

    style: LabelStyle
    file_id: FileId
    start: int
    end: int
    message: str = ""

    @classmethod
    def primary(cls, file_id: FileId, span: Any) -> Label:
        start, end = _bounds(span)
        return cls(LabelStyle.PRIMARY, file_id, start, end)

    @classmethod
    def secondary(cls, file_id: FileId, span: Any) -> Label:
        start, end = _bounds(span)
        return cls(LabelStyle.SECONDARY, file_id, start, end)

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end

    def with_message(self, message: str) -> Label:
        return dataclasses.replace(self, message=str(message))


@dataclass(frozen=True)
class Diagnostic:
    """A single message with a severity, an optional code, labels and notes."""

    severity: Severity
    message: str = ""
    code: str | None = None
    labels: tuple[Label, ...] = ()
    notes: tuple[str, ...] = ()

    def with_message(self, message: str) -> Diagnostic:
        return dataclasses.replace(self, message=str(message))

    def with_code(self, code: Any) -> Diagnostic:
        return dataclasses.replace(self, code=str(code))

    def with_labels(self, labels: Iterable[Label]) -> Diagnostic:
        """Append labels to those already present."""
        return dataclasses.replace(self, labels=self.labels + tuple(labels))

    def with_notes(self, notes: Iterable[str]) -> Diagnostic:
        """Append notes to those already present."""
        return dataclasses.replace(self, notes=self.notes + tuple(notes))


@dataclass(frozen=True)
class CfgCoord:
    """A location inside a configuration file."""

    file: FileId
    span: Any

    def into_label(self) -> Label:
        return Label.primary(self.file, self.span)


@dataclass
class Pack:
    """Diagnostics produced by one check, optionally tied to a crate id."""

    check: Check
    kid: str | None = None
    diags: list[Diagnostic] = field(default_factory=list)

    def push(self, diagnostic: Diagnostic) -> None:
        self.diags.append(diagnostic)

    def __len__(self) -> int:
        return len(self.diags)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.diags)