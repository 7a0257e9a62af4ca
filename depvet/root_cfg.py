"""The top level configuration that holds every check's table."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from depvet import licenses_cfg, sources_cfg
from depvet.core import Spanned
from depvet.sources_cfg import ConfigError

# Keys once accepted at the top level that now belong in the [graph] table
_DEPRECATED_GRAPH_KEYS = (
    ("targets", "targets"),
    ("exclude", "exclude"),
    ("features", "features"),
    ("all-features", "all_features"),
    ("no-default-features", "no_default_features"),
    ("exclude-dev", "exclude_dev"),
)


def _unwrap(raw: Any) -> tuple[Any, tuple[int, int]]:
    if isinstance(raw, Spanned):
        return raw.value, raw.span
    return raw, (0, 0)


class _Table:
    def __init__(self, data: Any, what: str):
        value, _span = _unwrap(data)
        if not isinstance(value, Mapping):
            raise ConfigError([f"expected a table for {what}, found {type(value).__name__}"])
        self._data = dict(value)
        self.errors: list[str] = []

    def take(self, key: str, convert: Callable[[Any], Any], default: Any = None) -> Any:
        if key not in self._data:
            return default
        raw = self._data.pop(key)
        try:
            return convert(raw)
        except ConfigError as err:
            self.errors.extend(f"'{key}': {e}" for e in err.errors)
        except (TypeError, ValueError) as err:
            self.errors.append(f"'{key}': {err}")
        return default

    def required(self, key: str, convert: Callable[[Any], Any]) -> Any:
        if key not in self._data:
            self.errors.append(f"missing required key '{key}'")
            return None
        return self.take(key, convert)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def finalize(self) -> None:
        self.errors.extend(f"unexpected key '{key}'" for key in self._data)
        if self.errors:
            raise ConfigError(self.errors)


def _string(raw: Any) -> str:
    value, _span = _unwrap(raw)
    if not isinstance(value, str):
        raise TypeError(f"expected a string, found {type(value).__name__}")
    return value


def _strings(raw: Any) -> list[str]:
    value, _span = _unwrap(raw)
    if not isinstance(value, list):
        raise TypeError(f"expected an array, found {type(value).__name__}")
    return [_string(item) for item in value]


def _bool(raw: Any) -> bool:
    value, _span = _unwrap(raw)
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, found {type(value).__name__}")
    return value


def _u32(raw: Any) -> int:
    value, _span = _unwrap(raw)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, found {type(value).__name__}")
    if not 0 <= value <= 0xFFFF_FFFF:
        raise ValueError(f"{value} is out of range for an unsigned 32-bit integer")
    return value


def _targets(raw: Any) -> list[Target]:
    value, _span = _unwrap(raw)
    if not isinstance(value, list):
        raise TypeError(f"expected an array, found {type(value).__name__}")
    return [Target.from_value(item) for item in value]


def _raw_table(raw: Any) -> dict[str, Any]:
    value, _span = _unwrap(raw)
    if not isinstance(value, Mapping):
        raise TypeError(f"expected a table, found {type(value).__name__}")
    return dict(value)


@dataclass
class Target:
    """A target triple to filter the graph by, with its enabled target features."""

    filter: Spanned[str]
    features: list[str] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> Target:
        """Read a target from either a plain triple string or a table."""
        inner, span = _unwrap(value)
        if isinstance(inner, str):
            return cls(Spanned(inner, span), [])
        if isinstance(inner, Mapping):
            table = _Table(inner, "target")
            triple = table.required("triple", lambda r: Spanned(_string(r), _unwrap(r)[1]))
            features = table.take("features", _strings, [])
            table.finalize()
            return cls(triple, features)
        raise ConfigError([f"expected a string or table, found {type(inner).__name__}"])


@dataclass
class GraphConfig:
    """How the crate graph is built."""

    targets: list[Target] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    all_features: bool = False
    no_default_features: bool = False
    exclude_dev: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> GraphConfig:
        table = _Table(data, "graph")
        targets = table.take("targets", _targets, [])
        exclude = table.take("exclude", _strings, [])
        features = table.take("features", _strings, [])
        all_features = table.take("all-features", _bool, False)
        no_default_features = table.take("no-default-features", _bool, False)
        exclude_dev = table.take("exclude-dev", _bool, False)
        table.finalize()
        return cls(targets, exclude, features, all_features, no_default_features, exclude_dev)


_GRAPH_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "targets": _targets,
    "exclude": _strings,
    "features": _strings,
    "all_features": _bool,
    "no_default_features": _bool,
    "exclude_dev": _bool,
}


@dataclass
class OutputConfig:
    """How diagnostics are printed."""

    feature_depth: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> OutputConfig:
        table = _Table(data, "output")
        feature_depth = table.take("feature-depth", _u32)
        table.finalize()
        return cls(feature_depth)


@dataclass
class RootConfig:
    """The whole configuration file.

    The advisories and bans tables are kept as they were read.
    """

    advisories: dict[str, Any] | None = None
    bans: dict[str, Any] | None = None
    licenses: licenses_cfg.Config | None = None
    sources: sources_cfg.Config | None = None
    graph: GraphConfig = field(default_factory=GraphConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    graph_deprecated: list[str] = field(default_factory=list)
    output_deprecated: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> RootConfig:
        table = _Table(data, "the configuration root")

        advisories = table.take("advisories", _raw_table)
        bans = table.take("bans", _raw_table)
        licenses = table.take("licenses", licenses_cfg.Config.from_dict)
        sources = table.take("sources", sources_cfg.Config.from_dict)

        graph = table.take("graph", GraphConfig.from_dict) or GraphConfig()

        graph_deprecated: list[str] = []
        for key, attr in _DEPRECATED_GRAPH_KEYS:
            if key in table:
                graph_deprecated.append(key)
                default = getattr(GraphConfig(), attr)
                setattr(graph, attr, table.take(key, _GRAPH_CONVERTERS[attr], default))

        output = table.take("output", OutputConfig.from_dict) or OutputConfig()
        output_deprecated = "feature-depth" in table
        if output_deprecated:
            output.feature_depth = table.take("feature-depth", _u32, 0)

        table.finalize()

        return cls(
            advisories=advisories,
            bans=bans,
            licenses=licenses,
            sources=sources,
            graph=graph,
            output=output,
            graph_deprecated=graph_deprecated,
            output_deprecated=output_deprecated,
        )

    @classmethod
    def from_toml(cls, text: str) -> RootConfig:
        """Parse a configuration file's TOML text."""
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as err:
            raise ConfigError([str(err)]) from None
        return cls.from_dict(data)