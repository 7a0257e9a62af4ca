# depvet

`depvet` checks where the crates of a dependency graph come from, and
loads and validates the policy configuration that drives such checks.

- **sources**: every crate must come from an allowed registry, git
  repository or hosting organization, and git sources can be required to
  pin at least a given specifier (`any` < `branch` < `tag` < `rev`).
- **licenses**: the licenses section of the policy (allowed licenses,
  per-crate exceptions, clarifications, private crate handling) is read
  and validated, and SPDX expressions and licensees are parsed.

It is a library; there is no command line tool.

## Installing

```
pip install depvet
```

For running the tests:

```
pip install "depvet[test]"
pytest
```

## Loading a configuration

The whole policy is a TOML document read with
`depvet.root_cfg.RootConfig.from_toml` (or `RootConfig.from_dict` for an
already parsed table):

```python
from depvet.root_cfg import RootConfig

root = RootConfig.from_toml("""
[graph]
targets = ["x86_64-unknown-linux-gnu"]

[sources]
unknown-registry = "deny"
unknown-git = "warn"
allow-git = ["https://github.com/example/project"]
required-git-spec = "tag"

[sources.allow-org]
github = ["example"]

[licenses]
allow = ["MIT", "Apache-2.0"]
""")
```

`root.sources` is a `depvet.sources_cfg.Config`, `root.licenses` a
`depvet.licenses_cfg.Config`, and `root.graph` / `root.output` hold the
`[graph]` and `[output]` tables. The `[advisories]` and `[bans]` tables
are kept as plain dictionaries, unchecked. Graph keys written at the top
level (`targets`, `exclude`, `features`, `all-features`,
`no-default-features`, `exclude-dev`) and a top-level `feature-depth`
are still accepted; `graph_deprecated` and `output_deprecated` record
that they were used.

Each section can also be built from a dictionary on its own with
`Config.from_dict`. Unknown keys and values of the wrong kind raise
`ConfigError`, which carries every problem found in its `errors` list.

Where a lint level is taken it is one of `allow`, `warn` or `deny`;
`depvet.diag.Severity.from_lint_level` maps these to the note, warning
and error severities.

## Validating

`Config.validate(file_id)` returns a pair: the validated configuration
and a list of `depvet.diag.Diagnostic` values describing what was wrong.

For sources, this parses every allowed URL (warning about unnecessary
scheme modifiers such as `sparse+`), normalizes git URLs, and collects
the allowed organizations.

For licenses, this normalizes `private.ignore-sources` URLs, sorts the
allowed and denied licensees, reports any licensee that is both allowed
and denied, parses each clarification's expression, and warns about use
of options that only version 1 configurations have (`unlicensed`,
`allow-osi-fsf-free`, `copyleft`, `default`, `deny`).

`depvet.licenses_cfg.load_exceptions(cfg, path, file_id)` adds the
`exceptions` array of a separate TOML file to a validated licenses
configuration and returns the diagnostics for any failure.

## Checking sources

```python
from depvet.core import Krate
from depvet.sources import KrateSpan, KrateSpans, check
from depvet.sources_cfg import Config

cfg, problems = Config.from_dict(
    {"unknown-git": "deny", "allow-git": ["https://github.com/example/foo"]}
).validate(file_id=0)

krate = Krate.from_package({
    "name": "foo",
    "id": "foo 1.0.0",
    "version": "1.0.0",
    "source": "git+https://github.com/example/foo?tag=v1.0.0",
})
spans = KrateSpans(file_id=1, spans=[KrateSpan(total=(0, 80), source=40)])

for pack in check(cfg, [krate], spans):
    for diag in pack:
        print(diag.severity.name, diag.code, diag.message)
```

`Krate.from_package` takes a package entry shaped like cargo metadata
output; its `source` is parsed with `depvet.core.Source.from_metadata`.
`check` returns a list of `depvet.diag.Pack` values: one for each crate
with a source that produced a diagnostic (crates.io crates matched by
the default allowance produce none), and a final one for allowed
sources and organizations that no crate used. Returns an empty list when
both unknown registries and unknown git sources are allowed.

## Other pieces

- `depvet.licenses_cfg.Expression.parse` and `Licensee.parse` parse SPDX
  license expressions and licensees, raising `ParseError` with a reason
  and a span.
- `depvet.core.VersionReq` parses and matches version requirements;
  `match_krate` checks a crate against a `PackageSpec`.
- `depvet.core.normalize_git_url` strips a trailing `.git` and
  `branch=master`, and returns the URL with its `GitSpec`.
- `depvet.core.hash_bytes` is the 32-bit xxHash (seed 0) used for
  license file hashes.
- `depvet.diag` holds `Diagnostic`, `Label`, `CfgCoord`, `Pack` and the
  `Severity` and `Check` enums; diagnostics and labels are immutable and
  each `with_*` method returns a new value.

## What it does not do

- It does not evaluate crates' licenses against the licenses
  configuration, and does not read or identify license files; only the
  configuration side of licenses is provided.
- It does not build a dependency graph: the caller supplies the crates
  and their spans.
- Advisories and bans are not checked; their tables are only kept.
- There is no command line interface and no diagnostic rendering.