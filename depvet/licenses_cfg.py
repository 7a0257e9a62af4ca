"""Configuration of the licenses check, and SPDX expression parsing."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping

from depvet.core import (
    LintLevel,
    PackageSpec,
    Spanned,
    VersionReq,
    binary_search,
    normalize_git_url,
)
from depvet.diag import Diagnostic, FileId, Label, Severity

DEFAULT_CONFIDENCE_THRESHOLD = 0.8

_TERM_PATTERN = re.compile(r"\(|\)|[^\s()]+")
_IDSTRING = re.compile(r"[A-Za-z0-9.\-]+")
_DOCREF = re.compile(r"DocumentRef-[A-Za-z0-9.\-]+:LicenseRef-[A-Za-z0-9.\-]+")
_OPERATORS = {"AND", "OR", "WITH"}


class ConfigError(ValueError):
    """The licenses configuration could not be deserialized."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ParseError(ValueError):
    """An SPDX expression or licensee could not be parsed."""

    def __init__(self, reason: str, span: tuple[int, int]):
        self.reason = reason
        self.span = span
        super().__init__(f"{reason} at {span[0]}..{span[1]}")


@dataclass(frozen=True)
class _Lexeme:
    text: str
    start: int
    end: int

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end


def _lex(text: str) -> list[_Lexeme]:
    return [_Lexeme(m.group(), m.start(), m.end()) for m in _TERM_PATTERN.finditer(text)]


def _is_license_id(name: str) -> bool:
    return bool(_IDSTRING.fullmatch(name) or _DOCREF.fullmatch(name))


@dataclass(frozen=True)
class LicenseReq:
    """A single license requirement: a license, maybe "or later", maybe an exception."""

    license: str
    or_later: bool = False
    exception: str | None = None

    def __str__(self) -> str:
        text = self.license + ("+" if self.or_later else "")
        return f"{text} WITH {self.exception}" if self.exception else text


@dataclass(frozen=True)
class ExpressionReq:
    """A requirement of an expression and where it sits in the expression text."""

    req: LicenseReq
    span: tuple[int, int]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.lexemes = _lex(text)
        self.pos = 0
        self.reqs: list[ExpressionReq] = []

    def peek(self) -> _Lexeme | None:
        return self.lexemes[self.pos] if self.pos < len(self.lexemes) else None

    def advance(self) -> _Lexeme:
        lexeme = self.peek()
        if lexeme is None:
            end = len(self.text)
            raise ParseError("expected a license or '('", (end, end))
        self.pos += 1
        return lexeme

    def parse(self) -> None:
        if not self.lexemes:
            raise ParseError("empty expression", (0, len(self.text)))
        self.parse_or()
        trailing = self.peek()
        if trailing is not None:
            reason = "unbalanced parentheses" if trailing.text == ")" else "unexpected term"
            raise ParseError(reason, trailing.span)

    def parse_or(self) -> None:
        self.parse_and()
        while (lexeme := self.peek()) is not None and lexeme.text == "OR":
            self.advance()
            self.parse_and()

    def parse_and(self) -> None:
        self.parse_term()
        while (lexeme := self.peek()) is not None and lexeme.text == "AND":
            self.advance()
            self.parse_term()

    def parse_term(self) -> None:
        lexeme = self.advance()
        if lexeme.text == "(":
            self.parse_or()
            closing = self.peek()
            if closing is None or closing.text != ")":
                raise ParseError("unclosed parenthesis", lexeme.span)
            self.advance()
            return
        req, span = _parse_license(self, lexeme, allow_plus=True)
        self.reqs.append(ExpressionReq(req, span))


def _parse_license(
    parser: _Parser, lexeme: _Lexeme, allow_plus: bool
) -> tuple[LicenseReq, tuple[int, int]]:
    if lexeme.text in _OPERATORS or lexeme.text == ")":
        raise ParseError("unexpected term", lexeme.span)
    name = lexeme.text
    or_later = name.endswith("+")
    if or_later:
        if not allow_plus:
            raise ParseError("a licensee cannot be followed by '+'", lexeme.span)
        name = name[:-1]
    if not _is_license_id(name):
        raise ParseError("unknown term", lexeme.span)

    end = lexeme.end
    exception = None
    nxt = parser.peek()
    if nxt is not None and nxt.text == "WITH":
        parser.advance()
        exc = parser.advance()
        if exc.text in _OPERATORS or not _IDSTRING.fullmatch(exc.text):
            raise ParseError("expected a license exception", exc.span)
        exception = exc.text
        end = exc.end
    return LicenseReq(name, or_later, exception), (lexeme.start, end)


class Expression:
    """A syntactically valid SPDX license expression."""

    def __init__(self, text: str, requirements: tuple[ExpressionReq, ...]):
        self.text = text
        self.requirements = requirements

    @classmethod
    def parse(cls, text: str) -> Expression:
        parser = _Parser(text)
        parser.parse()
        return cls(text, tuple(parser.reqs))

    def __iter__(self) -> Iterator[ExpressionReq]:
        return iter(self.requirements)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Expression):
            return NotImplemented
        return self.text == other.text

    def __hash__(self) -> int:
        return hash(self.text)

    def __len__(self) -> int:
        return len(self.text)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"


@dataclass(frozen=True, order=True)
class Licensee:
    """A license, with an optional exception, that a user accepts."""

    license: str
    exception: str = ""
    span: tuple[int, int] = field(default=(0, 0), compare=False)

    @classmethod
    def parse(cls, text: str) -> Licensee:
        parser = _Parser(text)
        if not parser.lexemes:
            raise ParseError("empty licensee", (0, len(text)))
        req, _span = _parse_license(parser, parser.advance(), allow_plus=False)
        trailing = parser.peek()
        if trailing is not None:
            raise ParseError("unexpected term", trailing.span)
        return cls(req.license, req.exception or "")

    def __str__(self) -> str:
        return f"{self.license} WITH {self.exception}" if self.exception else self.license


class BlanketAgreement(StrEnum):
    """Blanket acceptance of licenses by their OSI and FSF status."""

    BOTH = "both"
    EITHER = "either"
    OSI = "osi"
    FSF = "fsf"
    OSI_ONLY = "osi-only"
    FSF_ONLY = "fsf-only"
    NEITHER = "neither"

    @classmethod
    def parse(cls, text: str) -> BlanketAgreement:
        try:
            return cls(text)
        except ValueError:
            expected = ", ".join(m.value for m in cls)
            raise ValueError(f"expected one of {expected}, found '{text}'") from None


class _Table:
    def __init__(self, data: Any, what: str):
        if not isinstance(data, Mapping):
            raise ConfigError([f"expected a table for {what}, found {type(data).__name__}"])
        self._data = dict(data)
        self._errors: list[str] = []

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def take(self, key: str, convert: Callable[[Any], Any], default: Any = None) -> Any:
        if key not in self._data:
            return default
        raw = self._data.pop(key)
        try:
            return convert(raw)
        except ConfigError as err:
            self._errors.extend(f"'{key}': {e}" for e in err.errors)
        except (TypeError, ValueError) as err:
            self._errors.append(f"'{key}': {err}")
        return default

    def required(self, key: str, convert: Callable[[Any], Any]) -> Any:
        if key not in self._data:
            self._errors.append(f"missing required key '{key}'")
            return None
        return self.take(key, convert)

    def finalize(self) -> None:
        self._errors.extend(f"unexpected key '{key}'" for key in self._data)
        if self._errors:
            raise ConfigError(self._errors)


def _unwrap(raw: Any) -> tuple[Any, tuple[int, int]]:
    if isinstance(raw, Spanned):
        return raw.value, raw.span
    return raw, (0, 0)


def _string(raw: Any) -> str:
    if not isinstance(raw, str):
        raise TypeError(f"expected a string, found {type(raw).__name__}")
    return raw


def _spanned_string(raw: Any) -> Spanned[str]:
    value, span = _unwrap(raw)
    return Spanned(_string(value), span)


def _list_of(convert: Callable[[Any], Any]) -> Callable[[Any], list[Any]]:
    def inner(raw: Any) -> list[Any]:
        value, _span = _unwrap(raw)
        if not isinstance(value, list):
            raise TypeError(f"expected an array, found {type(value).__name__}")
        return [convert(item) for item in value]

    return inner


def _bool(raw: Any) -> bool:
    value, _span = _unwrap(raw)
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, found {type(value).__name__}")
    return value


def _int(raw: Any) -> int:
    value, _span = _unwrap(raw)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, found {type(value).__name__}")
    return value


def _float(raw: Any) -> float:
    value, _span = _unwrap(raw)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a float, found {type(value).__name__}")
    return float(value)


def _lint_level(raw: Any) -> LintLevel:
    return LintLevel.parse(_string(_unwrap(raw)[0]))


def _blanket(raw: Any) -> BlanketAgreement:
    return BlanketAgreement.parse(_string(_unwrap(raw)[0]))


def _licensee(raw: Any) -> Licensee:
    value, span = _unwrap(raw)
    text = _string(value)
    try:
        parsed = Licensee.parse(text)
    except ParseError as err:
        offset = span[0]
        raise ParseError(err.reason, (err.span[0] + offset, err.span[1] + offset)) from None
    return Licensee(parsed.license, parsed.exception, span)


def _package_spec(table: _Table) -> PackageSpec | None:
    spec_text = table.take("crate", _spanned_string)
    name = table.take("name", _spanned_string)
    version = table.take("version", lambda raw: VersionReq.parse(_string(_unwrap(raw)[0])))
    if spec_text is not None:
        crate_name, at, req = spec_text.value.partition("@")
        try:
            version_req = VersionReq.parse(req) if at else version
        except ValueError as err:
            raise ConfigError([f"'crate': {err}"]) from None
        return PackageSpec(Spanned(crate_name, spec_text.span), version_req)
    if name is None:
        table.required("name", _spanned_string)
        return None
    return PackageSpec(name, version)


@dataclass
class Private:
    """How private crates are detected and handled."""

    ignore: bool = False
    ignore_sources: list[Spanned[str]] = field(default_factory=list)
    registries: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Private:
        table = _Table(_unwrap(data)[0], "private")
        ignore = table.take("ignore", _bool, False)
        ignore_sources = table.take("ignore-sources", _list_of(_spanned_string), [])
        registries = table.take("registries", _list_of(lambda r: _string(_unwrap(r)[0])), [])
        table.finalize()
        return cls(ignore, ignore_sources, registries)


@dataclass(frozen=True)
class FileSource:
    """A crate-relative license file path and the hash of its text."""

    path: Spanned[str]
    hash: int

    @classmethod
    def from_dict(cls, data: Any) -> FileSource:
        table = _Table(_unwrap(data)[0], "license file")
        path = table.required("path", _spanned_string)
        hash_value = table.required("hash", _int)
        table.finalize()
        return cls(path, hash_value)

    def __repr__(self) -> str:
        return f"FileSource(path={self.path.value!r}, hash={self.hash:#x})"


@dataclass
class Clarification:
    """A user-supplied license expression for a crate, tied to its license files."""

    spec: PackageSpec
    expression: Spanned[str]
    license_files: list[FileSource]

    @classmethod
    def from_dict(cls, data: Any) -> Clarification:
        table = _Table(_unwrap(data)[0], "clarification")
        spec = _package_spec(table)
        expression = table.required("expression", _spanned_string)
        license_files = table.required("license-files", _list_of(FileSource.from_dict))
        table.finalize()
        return cls(spec, expression, license_files)


@dataclass
class LicenseException:
    """Additional licenses allowed for one particular crate."""

    spec: PackageSpec
    allow: list[Licensee]

    @classmethod
    def from_dict(cls, data: Any) -> LicenseException:
        table = _Table(_unwrap(data)[0], "exception")
        spec = _package_spec(table)
        allow = table.required("allow", _list_of(_licensee))
        table.finalize()
        return cls(spec, allow)


@dataclass
class Deprecated:
    """Options that only apply to version 1 configurations."""

    unlicensed: LintLevel = LintLevel.DENY
    allow_osi_fsf_free: BlanketAgreement = BlanketAgreement.NEITHER
    copyleft: LintLevel = LintLevel.WARN
    default: LintLevel = LintLevel.DENY
    deny: list[Licensee] = field(default_factory=list)


@dataclass
class Config:
    """The licenses check configuration as written by the user."""

    private: Private = field(default_factory=Private)
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    allow: list[Licensee] = field(default_factory=list)
    unused_allowed_license: LintLevel = LintLevel.WARN
    clarify: list[Clarification] = field(default_factory=list)
    exceptions: list[LicenseException] = field(default_factory=list)
    include_dev: bool = False
    deprecated: Deprecated | None = None
    deprecated_keys: list[Spanned[str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        table = _Table(_unwrap(data)[0], "licenses")
        version = table.take("version", _int, 1)
        used_deprecated: list[Spanned[str]] = []

        def deprecated(key: str, convert: Callable[[Any], Any], default: Any) -> Any:
            if key in table:
                used_deprecated.append(Spanned(key))
            return table.take(key, convert, default)

        private = table.take("private", Private.from_dict, None) or Private()
        unlicensed = deprecated("unlicensed", _lint_level, LintLevel.DENY)
        allow_osi_fsf_free = deprecated("allow-osi-fsf-free", _blanket, BlanketAgreement.NEITHER)
        copyleft = deprecated("copyleft", _lint_level, LintLevel.WARN)
        default = deprecated("default", _lint_level, LintLevel.DENY)
        confidence_threshold = table.take(
            "confidence-threshold", _float, DEFAULT_CONFIDENCE_THRESHOLD
        )
        deny = deprecated("deny", _list_of(_licensee), [])
        allow = table.take("allow", _list_of(_licensee), [])
        unused_allowed_license = table.take("unused-allowed-license", _lint_level, LintLevel.WARN)
        clarify = table.take("clarify", _list_of(Clarification.from_dict), [])
        exceptions = table.take("exceptions", _list_of(LicenseException.from_dict), [])
        include_dev = table.take("include-dev", _bool, False)
        table.finalize()

        dep = (
            Deprecated(unlicensed, allow_osi_fsf_free, copyleft, default, deny)
            if version <= 1
            else None
        )
        return cls(
            private=private,
            confidence_threshold=confidence_threshold,
            allow=allow,
            unused_allowed_license=unused_allowed_license,
            clarify=clarify,
            exceptions=exceptions,
            include_dev=include_dev,
            deprecated=dep,
            deprecated_keys=used_deprecated,
        )

    def validate(self, file_id: FileId) -> tuple[ValidConfig, list[Diagnostic]]:
        """Check urls, expressions and allow/deny overlap; return the result and diagnostics."""
        diags: list[Diagnostic] = []

        ignore_sources: list[str] = []
        for aurl in self.private.ignore_sources:
            try:
                url, _spec = normalize_git_url(aurl.value)
            except ValueError as err:
                diags.append(
                    Diagnostic(Severity.ERROR)
                    .with_message("failed to parse url")
                    .with_labels([Label.primary(file_id, aurl.span).with_message(str(err))])
                )
                continue
            ignore_sources.append(url)

        dep = self.deprecated
        denied: list[Licensee] = []
        if dep is not None:
            denied, dep.deny = sorted(dep.deny), []
        allowed = sorted(self.allow)

        exceptions = [ValidException(exc.spec, exc.allow, file_id) for exc in self.exceptions]

        # The same license both allowed and denied is almost certainly a mistake
        for d in denied:
            found, ai = binary_search(allowed, d)
            if found:
                diags.append(
                    Diagnostic(Severity.ERROR)
                    .with_message("a license id was specified in both `allow` and `deny`")
                    .with_labels(
                        [
                            Label.secondary(file_id, d.span).with_message("deny"),
                            Label.secondary(file_id, allowed[ai].span).with_message("allow"),
                        ]
                    )
                )

        clarifications: list[ValidClarification] = []
        for c in self.clarify:
            offset = c.expression.span[0]
            try:
                expr = Expression.parse(c.expression.value)
            except ParseError as err:
                diags.append(
                    Diagnostic(Severity.ERROR)
                    .with_message("unable to parse license expression")
                    .with_labels(
                        [
                            Label.primary(
                                file_id, (offset + err.span[0], offset + err.span[1])
                            ).with_message(err.reason)
                        ]
                    )
                )
                continue
            clarifications.append(
                ValidClarification(
                    spec=c.spec,
                    expr_offset=offset,
                    expression=expr,
                    license_files=sorted(c.license_files, key=lambda f: f.path.value),
                )
            )

        for key in self.deprecated_keys:
            diags.append(
                Diagnostic(Severity.WARNING)
                .with_message(f"'{key.value}' is deprecated and will be removed")
                .with_labels([Label.primary(file_id, key.span)])
            )

        valid = ValidConfig(
            file_id=file_id,
            private=self.private,
            unused_allowed_license=self.unused_allowed_license,
            confidence_threshold=self.confidence_threshold,
            denied=denied,
            allowed=allowed,
            clarifications=clarifications,
            exceptions=exceptions,
            ignore_sources=ignore_sources,
            deprecated=dep,
            include_dev=self.include_dev,
        )
        return valid, diags


@dataclass
class ValidClarification:
    spec: PackageSpec
    expr_offset: int
    expression: Expression
    license_files: list[FileSource]


@dataclass
class ValidException:
    spec: PackageSpec
    allowed: list[Licensee]
    file_id: FileId


@dataclass
class ValidConfig:
    """The licenses check configuration after validation."""

    file_id: FileId
    private: Private
    unused_allowed_license: LintLevel
    confidence_threshold: float
    denied: list[Licensee]
    allowed: list[Licensee]
    clarifications: list[ValidClarification]
    exceptions: list[ValidException]
    ignore_sources: list[str]
    deprecated: Deprecated | None
    include_dev: bool


def load_exceptions(cfg: ValidConfig, path: Any, file_id: FileId) -> list[Diagnostic]:
    """Add the exceptions from an override file to the configuration.

    Returns the diagnostics for any failure to read or parse the file.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as err:
        return [
            Diagnostic(Severity.ERROR)
            .with_message("failed to read exceptions override")
            .with_notes([f"path = '{path}'", f"error = {err}"])
        ]

    try:
        table = _Table(tomllib.loads(content), "exceptions override")
        exceptions = table.required("exceptions", _list_of(LicenseException.from_dict))
        table.finalize()
    except tomllib.TOMLDecodeError as err:
        return [Diagnostic(Severity.ERROR).with_message(str(err))]
    except ConfigError as err:
        return [Diagnostic(Severity.ERROR).with_message(e) for e in err.errors]

    cfg.exceptions.extend(ValidException(exc.spec, exc.allow, file_id) for exc in exceptions)
    return []