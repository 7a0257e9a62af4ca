"""Configuration of the sources check."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from itertools import chain
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit, urlunsplit

from depvet.core import CRATES_IO_INDEX, GitSpec, LintLevel, Spanned, normalize_git_url
from depvet.diag import Diagnostic, FileId, Label, Severity

CRATES_IO_URL = CRATES_IO_INDEX

_SPECIAL_SCHEMES = {"http", "https", "ws", "wss", "ftp", "file"}


class ConfigError(ValueError):
    """Raised when a configuration table cannot be read."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class OrgType(StrEnum):
    """Hosting services whose organizations can be allowed."""

    GITHUB = "github.com"
    GITLAB = "gitlab.com"
    BITBUCKET = "bitbucket.org"


class _Table:
    def __init__(self, data: Any, what: str):
        if not isinstance(data, Mapping):
            raise ConfigError([f"expected a table for {what}, found {type(data).__name__}"])
        self._data = dict(data)
        self._errors: list[str] = []

    def take(self, key: str, convert: Callable[[Any], Any], default: Any) -> Any:
        if key not in self._data:
            return default
        raw = self._data.pop(key)
        try:
            return convert(raw)
        except (TypeError, ValueError) as err:
            self._errors.append(f"'{key}': {err}")
            return default

    def finalize(self) -> None:
        self._errors.extend(f"unexpected key '{key}'" for key in self._data)
        if self._errors:
            raise ConfigError(self._errors)


def _spanned_string(item: Any) -> Spanned[str]:
    if isinstance(item, Spanned) and isinstance(item.value, str):
        return item
    if isinstance(item, str):
        return Spanned(item)
    raise TypeError(f"expected a string, found {type(item).__name__}")


def _strings(raw: Any) -> list[Spanned[str]]:
    if not isinstance(raw, list):
        raise TypeError(f"expected an array, found {type(raw).__name__}")
    return [_spanned_string(item) for item in raw]


def _lint_level(raw: Any) -> LintLevel:
    if not isinstance(raw, str):
        raise TypeError(f"expected a string, found {type(raw).__name__}")
    return LintLevel.parse(raw)


def _git_spec(raw: Any) -> Spanned[GitSpec]:
    if isinstance(raw, Spanned):
        return Spanned(GitSpec.parse(raw.value), raw.span)
    if not isinstance(raw, str):
        raise TypeError(f"expected a string, found {type(raw).__name__}")
    return Spanned(GitSpec.parse(raw))


def _parse_url(text: str) -> str:
    parts = urlsplit(text.strip())
    scheme = parts.scheme.lower()
    if not scheme or not scheme[0].isalpha():
        raise ValueError("relative URL without a base")
    if scheme in _SPECIAL_SCHEMES and scheme != "file" and not parts.netloc:
        raise ValueError("empty host")
    userinfo, at, host = parts.netloc.rpartition("@")
    path = parts.path
    if scheme in _SPECIAL_SCHEMES and not path:
        path = "/"
    return urlunsplit((scheme, f"{userinfo}{at}{host.lower()}", path, parts.query, parts.fragment))


@dataclass
class Orgs:
    """Organizations, per hosting service, that crates may come from."""

    github: list[Spanned[str]] = field(default_factory=list)
    gitlab: list[Spanned[str]] = field(default_factory=list)
    bitbucket: list[Spanned[str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Orgs:
        table = _Table(data, "allow-org")
        github = table.take("github", _strings, [])
        gitlab = table.take("gitlab", _strings, [])
        bitbucket = table.take("bitbucket", _strings, [])
        table.finalize()
        return cls(github, gitlab, bitbucket)


@dataclass
class Config:
    """The sources check configuration as written by the user."""

    unknown_registry: LintLevel = LintLevel.WARN
    unknown_git: LintLevel = LintLevel.WARN
    allow_registry: list[Spanned[str]] = field(default_factory=lambda: [Spanned(CRATES_IO_URL)])
    allow_git: list[Spanned[str]] = field(default_factory=list)
    allow_org: Orgs = field(default_factory=Orgs)
    private: list[Spanned[str]] = field(default_factory=list)
    required_git_spec: Spanned[GitSpec] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        table = _Table(data, "sources")
        unknown_registry = table.take("unknown-registry", _lint_level, LintLevel.WARN)
        unknown_git = table.take("unknown-git", _lint_level, LintLevel.WARN)
        allow_registry = table.take("allow-registry", _strings, None)
        allow_git = table.take("allow-git", _strings, [])
        allow_org = table.take("allow-org", Orgs.from_dict, None)
        private = table.take("private", _strings, [])
        required_git_spec = table.take("required-git-spec", _git_spec, None)
        table.finalize()
        return cls(
            unknown_registry=unknown_registry,
            unknown_git=unknown_git,
            allow_registry=(
                allow_registry if allow_registry is not None else [Spanned(CRATES_IO_URL)]
            ),
            allow_git=allow_git,
            allow_org=allow_org if allow_org is not None else Orgs(),
            private=private,
            required_git_spec=required_git_spec,
        )

    def validate(self, file_id: FileId) -> tuple[ValidConfig, list[Diagnostic]]:
        """Parse the urls; return the valid configuration and any diagnostics."""
        diags: list[Diagnostic] = []
        allowed_sources: list[UrlSource] = []

        entries = chain(
            ((u, True, False) for u in self.allow_registry),
            ((u, True, True) for u in self.allow_git),
            ((u, False, False) for u in self.private),
        )
        for aurl, exact, is_git in entries:
            text = aurl.value
            skip = 0
            scheme_end = text.find("://")
            if scheme_end != -1:
                plus = text.find("+", 0, scheme_end)
                if plus != -1:
                    start = aurl.span[0]
                    diags.append(
                        Diagnostic(Severity.WARNING)
                        .with_message("scheme modifiers are unnecessary")
                        .with_labels([Label.primary(file_id, (start, start + scheme_end))])
                    )
                    skip = plus + 1

            try:
                url = _parse_url(text[skip:])
                if is_git:
                    url, _spec = normalize_git_url(url)
            except ValueError as err:
                diags.append(
                    Diagnostic(Severity.ERROR)
                    .with_message("failed to parse url")
                    .with_labels([Label.primary(file_id, aurl.span).with_message(str(err))])
                )
                continue

            allowed_sources.append(UrlSource(Spanned(url, aurl.span), exact))

        allowed_orgs = [
            *((OrgType.GITHUB, o) for o in self.allow_org.github),
            *((OrgType.GITLAB, o) for o in self.allow_org.gitlab),
            *((OrgType.BITBUCKET, o) for o in self.allow_org.bitbucket),
        ]

        valid = ValidConfig(
            file_id=file_id,
            unknown_registry=self.unknown_registry,
            unknown_git=self.unknown_git,
            allowed_sources=allowed_sources,
            allowed_orgs=allowed_orgs,
            required_git_spec=self.required_git_spec,
        )
        return valid, diags


@dataclass(frozen=True)
class UrlSource:
    """An allowed source url; non-exact ones match any path below it."""

    url: Spanned[str]
    exact: bool


@dataclass
class ValidConfig:
    """The sources check configuration after validation."""

    file_id: FileId
    unknown_registry: LintLevel
    unknown_git: LintLevel
    allowed_sources: list[UrlSource]
    allowed_orgs: list[tuple[OrgType, Spanned[str]]]
    required_git_spec: Spanned[GitSpec] | None = None