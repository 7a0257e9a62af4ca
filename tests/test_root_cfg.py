import pytest

from depvet.core import LintLevel
from depvet.root_cfg import GraphConfig, OutputConfig, RootConfig, Target
from depvet.sources_cfg import ConfigError


def test_empty_config_has_defaults():
    cfg = RootConfig.from_toml("")
    assert cfg.advisories is None
    assert cfg.bans is None
    assert cfg.licenses is None
    assert cfg.sources is None
    assert cfg.graph == GraphConfig()
    assert cfg.output.feature_depth is None
    assert cfg.graph_deprecated == []
    assert cfg.output_deprecated is False


def test_target_from_string():
    target = Target.from_value("x86_64-unknown-linux-gnu")
    assert target.filter.value == "x86_64-unknown-linux-gnu"
    assert target.features == []


def test_target_from_table():
    target = Target.from_value(
        {"triple": "wasm32-unknown-unknown", "features": ["atomics"]}
    )
    assert target.filter.value == "wasm32-unknown-unknown"
    assert target.features == ["atomics"]


def test_target_table_requires_triple():
    with pytest.raises(ConfigError) as info:
        Target.from_value({"features": ["atomics"]})
    assert any("triple" in e for e in info.value.errors)


def test_target_rejects_other_types():
    with pytest.raises(ConfigError):
        Target.from_value(5)


def test_graph_table():
    cfg = RootConfig.from_toml(
        """
[graph]
targets = ["aarch64-apple-darwin", { triple = "x86_64-pc-windows-msvc" }]
exclude = ["some-crate"]
features = ["serde"]
all-features = true
no-default-features = true
exclude-dev = true
"""
    )
    assert [t.filter.value for t in cfg.graph.targets] == [
        "aarch64-apple-darwin",
        "x86_64-pc-windows-msvc",
    ]
    assert cfg.graph.exclude == ["some-crate"]
    assert cfg.graph.features == ["serde"]
    assert cfg.graph.all_features is True
    assert cfg.graph.no_default_features is True
    assert cfg.graph.exclude_dev is True
    assert cfg.graph_deprecated == []


def test_deprecated_top_level_graph_keys():
    cfg = RootConfig.from_toml(
        """
targets = ["aarch64-apple-darwin"]
all-features = true
exclude-dev = true
"""
    )
    assert cfg.graph_deprecated == ["targets", "all-features", "exclude-dev"]
    assert cfg.graph.targets[0].filter.value == "aarch64-apple-darwin"
    assert cfg.graph.all_features is True
    assert cfg.graph.exclude_dev is True


def test_deprecated_key_overrides_graph_table():
    cfg = RootConfig.from_dict({"graph": {"exclude": ["a"]}, "exclude": ["b"]})
    assert cfg.graph.exclude == ["b"]
    assert cfg.graph_deprecated == ["exclude"]


def test_output_table():
    cfg = RootConfig.from_toml("[output]\nfeature-depth = 3\n")
    assert cfg.output.feature_depth == 3
    assert cfg.output_deprecated is False


def test_deprecated_feature_depth():
    cfg = RootConfig.from_toml("feature-depth = 2\n")
    assert cfg.output.feature_depth == 2
    assert cfg.output_deprecated is True


def test_negative_feature_depth_rejected():
    with pytest.raises(ConfigError):
        OutputConfig.from_dict({"feature-depth": -1})


def test_unknown_key_rejected():
    with pytest.raises(ConfigError) as info:
        RootConfig.from_dict({"nonsense": 1})
    assert any("nonsense" in e for e in info.value.errors)


def test_unknown_graph_key_rejected():
    with pytest.raises(ConfigError):
        GraphConfig.from_dict({"bogus": True})


def test_wrong_type_in_graph_rejected():
    with pytest.raises(ConfigError):
        RootConfig.from_dict({"graph": {"all-features": "yes"}})


def test_licenses_and_sources_tables_are_parsed():
    cfg = RootConfig.from_toml(
        """
[licenses]
allow = ["MIT"]

[sources]
unknown-git = "deny"
"""
    )
    assert [lic.license for lic in cfg.licenses.allow] == ["MIT"]
    assert cfg.sources.unknown_git is LintLevel.DENY


def test_errors_from_subtables_are_reported():
    with pytest.raises(ConfigError) as info:
        RootConfig.from_dict({"sources": {"unknown-git": "sometimes"}})
    assert any(e.startswith("'sources'") for e in info.value.errors)


def test_advisories_and_bans_kept_as_tables():
    cfg = RootConfig.from_dict({"advisories": {"yanked": "deny"}, "bans": {"multiple-versions": "warn"}})
    assert cfg.advisories == {"yanked": "deny"}
    assert cfg.bans == {"multiple-versions": "warn"}


def test_invalid_toml_rejected():
    with pytest.raises(ConfigError):
        RootConfig.from_toml("[graph\n")