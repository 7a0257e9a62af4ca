"""Crates, their sources and version requirements."""

from __future__ import annotations

import functools
import logging
import sys
from bisect import bisect_left
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from pathlib import PurePosixPath
from typing import Any, Generic, Mapping, Sequence, TypeVar
from urllib.parse import SplitResult, parse_qsl, urlsplit, urlunsplit

import semver

_log = logging.getLogger(__name__)

T = TypeVar("T")

CRATES_IO_INDEX = "https://github.com/rust-lang/crates.io-index"
CRATES_IO_HTTP_INDEX = "sparse+https://index.crates.io/"
CRATES_IO_SPARSE_DIR = (
    "index.crates.io-6f17d22bba15001f"
    if sys.byteorder == "little"
    else "index.crates.io-d11c229612889eed"
)

_SPECIAL_SCHEMES = {"http", "https", "ws", "wss", "ftp", "file"}


def _parse_variant(enum_cls, text: str):
    try:
        return enum_cls(text)
    except ValueError:
        expected = ", ".join(str(m.value) for m in enum_cls)
        raise ValueError(f"expected one of {expected}, found '{text}'") from None


class LintLevel(StrEnum):
    """How a lint violation is reported."""

    ALLOW = "allow"
    WARN = "warn"
    DENY = "deny"

    @classmethod
    def parse(cls, text: str) -> LintLevel:
        return _parse_variant(cls, text)


@functools.total_ordering
class GitSpec(Enum):
    """Git source specifiers, ordered from least to most specific."""

    ANY = "any"
    BRANCH = "branch"
    TAG = "tag"
    REV = "rev"

    @classmethod
    def parse(cls, text: str) -> GitSpec:
        return _parse_variant(cls, text)

    @property
    def _rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, GitSpec):
            return NotImplemented
        return self._rank < other._rank

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Spanned(Generic[T]):
    """A value together with the location it was read from."""

    value: T
    span: tuple[int, int] = (0, 0)


def _coerce_version(version: Any) -> semver.Version:
    if isinstance(version, semver.Version):
        return version
    return semver.Version.parse(str(version))


def _cmp_pre(a: str | None, b: str | None) -> int:
    return semver.Version(0, 0, 0, a or None).compare(semver.Version(0, 0, 0, b or None))


@dataclass(frozen=True)
class _Comparator:
    op: str
    major: int
    minor: int | None
    patch: int | None
    pre: str

    def _order(self, v: semver.Version) -> int:
        for mine, theirs in ((self.major, v.major), (self.minor, v.minor), (self.patch, v.patch)):
            if mine is None:
                return 0
            if theirs != mine:
                return 1 if theirs > mine else -1
        return _cmp_pre(v.prerelease, self.pre)

    def matches(self, v: semver.Version) -> bool:
        match self.op:
            case "=":
                return self._order(v) == 0
            case ">":
                return self._order(v) > 0
            case ">=":
                return self._order(v) >= 0
            case "<":
                return self._order(v) < 0
            case "<=":
                return self._order(v) <= 0
            case "~":
                return self._matches_tilde(v)
            case _:
                return self._matches_caret(v)

    def _matches_tilde(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return v.patch > self.patch
        return _cmp_pre(v.prerelease, self.pre) >= 0

    def _matches_caret(self, v: semver.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            return v.minor >= self.minor if self.major > 0 else v.minor == self.minor
        if self.major > 0:
            if v.minor != self.minor:
                return v.minor > self.minor
            if v.patch != self.patch:
                return v.patch > self.patch
        elif self.minor > 0:
            if v.minor != self.minor:
                return False
            if v.patch != self.patch:
                return v.patch > self.patch
        elif v.minor != self.minor or v.patch != self.patch:
            return False
        return _cmp_pre(v.prerelease, self.pre) >= 0


_OPS = (">=", "<=", ">", "<", "=", "~", "^")
_WILDCARDS = ("*", "x", "X")


def _parse_number(part: str, text: str) -> int:
    if not (part.isascii() and part.isdigit()):
        raise ValueError(f"invalid version number '{part}' in '{text}'")
    if len(part) > 1 and part.startswith("0"):
        raise ValueError(f"leading zero in version number '{part}' in '{text}'")
    return int(part)


def _parse_comparator(text: str) -> _Comparator | None:
    original = text
    rest = text.strip()
    op = ""
    for candidate in _OPS:
        if rest.startswith(candidate):
            op = candidate
            rest = rest[len(candidate):].strip()
            break
    if not rest:
        raise ValueError(f"missing version in requirement '{original}'")
    rest = rest.split("+", 1)[0]
    core, sep, pre = rest.partition("-")
    if sep and (not pre or any(not ident for ident in pre.split("."))):
        raise ValueError(f"invalid pre-release in '{original}'")
    parts = core.split(".")
    if len(parts) > 3:
        raise ValueError(f"too many version components in '{original}'")

    numbers: list[int] = []
    wildcard = False
    for part in parts:
        if part in _WILDCARDS:
            wildcard = True
            continue
        if wildcard:
            raise ValueError(f"unexpected version after wildcard in '{original}'")
        numbers.append(_parse_number(part, original))

    if wildcard:
        if op not in ("", "="):
            raise ValueError(f"unexpected wildcard after '{op}' in '{original}'")
        if pre:
            raise ValueError(f"unexpected pre-release after wildcard in '{original}'")
        if not numbers:
            return None
        op = "="
    if pre and len(numbers) < 3:
        raise ValueError(f"pre-release requires a full version in '{original}'")

    padded = numbers + [None] * (3 - len(numbers))
    return _Comparator(op or "^", padded[0], padded[1], padded[2], pre)


@dataclass(frozen=True)
class VersionReq:
    """A set of comma separated comparators a version must all satisfy."""

    text: str
    _comparators: tuple[_Comparator, ...] = field(default=(), repr=False, compare=False)

    @classmethod
    def parse(cls, text: str) -> VersionReq:
        if not text.strip():
            raise ValueError("empty version requirement")
        comparators = tuple(
            c for c in (_parse_comparator(piece) for piece in text.split(",")) if c is not None
        )
        return cls(text.strip(), comparators)

    def matches(self, version: Any) -> bool:
        v = _coerce_version(version)
        if not all(c.matches(v) for c in self._comparators):
            return False
        if not v.prerelease:
            return True
        return any(
            c.pre and (c.major, c.minor, c.patch) == (v.major, v.minor, v.patch)
            for c in self._comparators
        )

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class PackageSpec:
    """A crate name with an optional version requirement."""

    name: Spanned[str]
    version_req: VersionReq | None = None


class SourceKind(Enum):
    CRATES_IO = "crates-io"
    GIT = "git"
    REGISTRY = "registry"
    SPARSE = "sparse"


def _split_url(text: str) -> SplitResult:
    parts = urlsplit(text.strip())
    scheme = parts.scheme.lower()
    if not scheme or not scheme[0].isalpha():
        raise ValueError(f"relative URL without a base: '{text}'")
    if scheme in _SPECIAL_SCHEMES and scheme != "file" and not parts.netloc:
        raise ValueError(f"empty host in '{text}'")
    userinfo, at, host = parts.netloc.rpartition("@")
    netloc = f"{userinfo}{at}{host.lower()}"
    path = parts.path
    if scheme in _SPECIAL_SCHEMES and not path:
        path = "/"
    return SplitResult(scheme, netloc, path, parts.query, parts.fragment)


def _canonical_url(text: str) -> str:
    return urlunsplit(_split_url(text))


def _host_and_path(url: str) -> tuple[str | None, str]:
    parts = urlsplit(_canonical_url(url))
    return parts.hostname, parts.path


def normalize_git_url(url: str) -> tuple[str, GitSpec]:
    """Normalize a git url for comparison and return it with its specifier."""
    parts = _split_url(url)
    path = parts.path
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if path.endswith("/") and len(path) > 1:
        path = path[:-1]

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    spec = GitSpec.ANY
    for key, _value in pairs:
        match key:
            case "branch" | "ref":
                spec = GitSpec.BRANCH
            case "tag":
                spec = GitSpec.TAG
            case "rev":
                spec = GitSpec.REV

    query = parts.query
    if ("branch", "master") in pairs:
        if len(pairs) == 1:
            query = ""
        else:
            query = "&".join(f"{k}={v}" for k, v in pairs if (k, v) != ("branch", "master"))

    normalized = urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))
    return normalized, spec


@dataclass(frozen=True)
class Source:
    """Where a crate was obtained from."""

    kind: SourceKind
    url: str = CRATES_IO_INDEX
    is_sparse: bool = False
    spec: GitSpec | None = None

    @classmethod
    def crates_io(cls, is_sparse: bool) -> Source:
        return cls(SourceKind.CRATES_IO, CRATES_IO_INDEX, is_sparse=is_sparse)

    @classmethod
    def from_metadata(cls, urls: str, manifest_path: Any) -> Source:
        """Parse a package source url as reported by cargo metadata.

        The manifest path decides whether crates.io is used through its
        sparse index, assuming the canonical cargo directory layout.
        """
        kind, plus, url_str = urls.partition("+")
        if not plus:
            raise ValueError(f"'{urls}' is not a valid crate source")

        match kind:
            case "sparse":
                if urls == CRATES_IO_HTTP_INDEX:
                    return cls.crates_io(True)
                return cls(SourceKind.SPARSE, _canonical_url(urls))
            case "registry":
                if url_str == CRATES_IO_INDEX:
                    parents = PurePosixPath(str(manifest_path)).parents
                    is_sparse = len(parents) > 1 and parents[1].name == CRATES_IO_SPARSE_DIR
                    return cls.crates_io(is_sparse)
                return cls(SourceKind.REGISTRY, _canonical_url(url_str))
            case "git":
                url, spec = normalize_git_url(url_str)
                return cls(SourceKind.GIT, url, spec=spec)
            case _:
                raise ValueError(f"unknown source spec '{kind}' for url {urls}")

    def is_git(self) -> bool:
        return self.kind is SourceKind.GIT

    def git_spec(self) -> GitSpec | None:
        return self.spec if self.is_git() else None

    def is_registry(self) -> bool:
        return not self.is_git()

    def is_crates_io(self) -> bool:
        return self.kind is SourceKind.CRATES_IO

    def __str__(self) -> str:
        match self.kind:
            case SourceKind.CRATES_IO:
                return f"registry+{CRATES_IO_INDEX}"
            case SourceKind.GIT:
                return f"git+{self.url}"
            case SourceKind.REGISTRY:
                return f"registry+{self.url}"
            case _:
                return self.url


@functools.total_ordering
@dataclass(eq=False)
class Krate:
    """A package in the dependency graph, identified by its id."""

    name: str = ""
    id: str = ""
    version: semver.Version = field(default_factory=lambda: semver.Version(0, 1, 0))
    source: Source | None = None
    authors: list[str] = field(default_factory=list)
    repository: str | None = None
    description: str | None = None
    manifest_path: str = ""
    license: str | None = None
    license_file: str | None = None
    deps: list[dict[str, Any]] = field(default_factory=list)
    features: dict[str, list[str]] = field(default_factory=dict)
    targets: list[dict[str, Any]] = field(default_factory=list)
    publish: list[str] | None = None

    @classmethod
    def from_package(cls, pkg: Mapping[str, Any]) -> Krate:
        """Build a crate from a package entry of cargo metadata output."""
        name = pkg["name"]
        version = _coerce_version(pkg["version"])
        manifest_path = str(pkg.get("manifest_path") or "")

        source = None
        raw_source = pkg.get("source")
        if raw_source is not None:
            try:
                source = Source.from_metadata(str(raw_source), manifest_path)
            except ValueError as err:
                _log.warning("unable to parse source url for %s:%s: %s", name, version, err)

        license_expr = pkg.get("license")
        if license_expr is not None and "/" in license_expr:
            # '/' used to be accepted in place of OR, which SPDX does not allow
            license_expr = license_expr.replace("/", " OR ")

        publish = pkg.get("publish")
        return cls(
            name=name,
            id=str(pkg["id"]),
            version=version,
            source=source,
            authors=list(pkg.get("authors") or []),
            repository=pkg.get("repository"),
            description=pkg.get("description"),
            manifest_path=manifest_path,
            license=license_expr,
            license_file=pkg.get("license_file"),
            deps=sorted(pkg.get("dependencies") or [], key=lambda d: d["name"]),
            features=dict(sorted((pkg.get("features") or {}).items())),
            targets=list(pkg.get("targets") or []),
            publish=list(publish) if publish is not None else None,
        )

    def is_private(self, private_registries: Sequence[str]) -> bool:
        """True if unpublished, or only published to the given registries."""
        if self.publish is None:
            return False
        if not self.publish:
            return True
        return all(reg in private_registries for reg in self.publish)

    def matches_url(self, url: str, exact: bool) -> bool:
        """Whether the given url matches this crate's source."""
        if self.source is None:
            return False
        if self.source.is_crates_io():
            text = _canonical_url(url)
            return text.endswith(CRATES_IO_HTTP_INDEX[8:]) or text.endswith(CRATES_IO_INDEX[10:])

        khost, kpath = _host_and_path(self.source.url)
        host, path = _host_and_path(url)
        return (khost == host and exact and kpath == path) or (
            not exact and kpath.startswith(path)
        )

    def is_crates_io(self) -> bool:
        return self.source is not None and self.source.is_crates_io()

    def is_git_source(self) -> bool:
        return self.source is not None and self.source.is_git()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Krate):
            return NotImplemented
        return self.id == other.id

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Krate):
            return NotImplemented
        return self.id < other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return f"{self.name} = {self.version}"


def binary_search(seq: Sequence[Any], query: Any) -> tuple[bool, int]:
    """Search a sorted sequence; return (found, index or insertion point)."""
    index = bisect_left(seq, query)
    return index < len(seq) and seq[index] == query, index


def contains(seq: Sequence[Any], query: Any) -> bool:
    return any(item == query for item in seq)


_P1 = 2654435761
_P2 = 2246822519
_P3 = 3266489917
_P4 = 668265263
_P5 = 374761393
_MASK = 0xFFFFFFFF


def _rotl(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _MASK


def _round(acc: int, lane: int) -> int:
    return (_rotl((acc + lane * _P2) & _MASK, 13) * _P1) & _MASK


def hash_bytes(data: bytes) -> int:
    """32-bit xxHash of the data with a zero seed."""
    length = len(data)
    pos = 0
    if length >= 16:
        v1 = (_P1 + _P2) & _MASK
        v2 = _P2
        v3 = 0
        v4 = (-_P1) & _MASK
        while pos + 16 <= length:
            v1 = _round(v1, int.from_bytes(data[pos:pos + 4], "little"))
            v2 = _round(v2, int.from_bytes(data[pos + 4:pos + 8], "little"))
            v3 = _round(v3, int.from_bytes(data[pos + 8:pos + 12], "little"))
            v4 = _round(v4, int.from_bytes(data[pos + 12:pos + 16], "little"))
            pos += 16
        h = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
    else:
        h = _P5
    h = (h + length) & _MASK

    while pos + 4 <= length:
        lane = int.from_bytes(data[pos:pos + 4], "little")
        h = (h + lane * _P3) & _MASK
        h = (_rotl(h, 17) * _P4) & _MASK
        pos += 4
    for byte in data[pos:]:
        h = (h + byte * _P5) & _MASK
        h = (_rotl(h, 11) * _P1) & _MASK

    h ^= h >> 15
    h = (h * _P2) & _MASK
    h ^= h >> 13
    h = (h * _P3) & _MASK
    h ^= h >> 16
    return h


def match_req(version: Any, req: VersionReq | None) -> bool:
    """A missing requirement is always satisfied."""
    return req is None or req.matches(version)


def match_krate(krate: Krate, spec: PackageSpec) -> bool:
    return krate.name == spec.name.value and match_req(krate.version, spec.version_req)