"""The sources check: verifies where every crate comes from."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator
from urllib.parse import urlsplit

from depvet import sources_diags as diags
from depvet.core import Krate, LintLevel, SourceKind
from depvet.diag import CfgCoord, Check, Diagnostic, FileId, Label, Pack
from depvet.sources_cfg import CRATES_IO_URL, OrgType, ValidConfig

_ORG_HOSTS = {org.value: org for org in OrgType}


@dataclass(frozen=True)
class KrateSpan:
    """Where a crate's entry, and its source, sit in the synthesized lock file."""

    total: tuple[int, int]
    source: int


@dataclass
class KrateSpans:
    """Spans of every crate in the synthesized lock file, in crate order."""

    file_id: FileId
    spans: list[KrateSpan] = field(default_factory=list)

    def __getitem__(self, index: int) -> KrateSpan:
        return self.spans[index]

    def __len__(self) -> int:
        return len(self.spans)

    def __iter__(self) -> Iterator[KrateSpan]:
        return iter(self.spans)


def get_org(url: str) -> tuple[OrgType, str] | None:
    """The hosting service and organization of a url, if it is a known one."""
    parts = urlsplit(url)
    org_type = _ORG_HOSTS.get((parts.hostname or "").lower())
    if org_type is None:
        return None
    return org_type, parts.path.removeprefix("/").split("/")[0]


def _org_matches(allowed: str, org_type: OrgType, found_type: OrgType, found: str) -> bool:
    return found_type == org_type and len(allowed) == len(found) and allowed.lower() == found.lower()


def check(cfg: ValidConfig, krates: Iterable[Krate], krate_spans: KrateSpans) -> list[Pack]:
    """Check every crate's source against the configuration; return the packs."""
    if cfg.unknown_registry is LintLevel.ALLOW and cfg.unknown_git is LintLevel.ALLOW:
        return []

    sink: list[Pack] = []
    source_hits = [False] * len(cfg.allowed_sources)
    org_hits = [False] * len(cfg.allowed_orgs)

    min_git_spec = None
    if cfg.required_git_spec is not None:
        min_git_spec = (
            cfg.required_git_spec.value,
            CfgCoord(cfg.file_id, cfg.required_git_spec.span),
        )

    for krate, span in zip(krates, krate_spans):
        source = krate.source
        if source is None:
            continue

        pack = Pack(Check.SOURCES, krate.id)
        label = Label.primary(krate_spans.file_id, (span.source, span.total[1])).with_message(
            "source"
        )

        if source.is_registry():
            lint_level, type_name = cfg.unknown_registry, "registry"
        elif (spec := source.git_spec()) is not None:
            if min_git_spec is not None and spec < min_git_spec[0]:
                pack.push(
                    diags.below_minimum_required_spec(label, min_git_spec[0], spec, min_git_spec[1])
                )
            lint_level, type_name = cfg.unknown_git, "git"
        else:
            continue

        ind = next(
            (
                i
                for i, src in enumerate(cfg.allowed_sources)
                if krate.matches_url(src.url.value, src.exact)
            ),
            None,
        )

        diag: Diagnostic
        if ind is not None:
            source_hits[ind] = True
            # crates.io is the default and the vast majority, so don't report it
            if krate.is_crates_io():
                continue
            diag = diags.explicitly_allowed_source(
                label, type_name, CfgCoord(cfg.file_id, cfg.allowed_sources[ind].url.span)
            )
        elif source.kind is SourceKind.GIT and (org := get_org(source.url)) is not None:
            found_type, orgname = org
            org_ind = next(
                (
                    i
                    for i, (org_type, allowed) in enumerate(cfg.allowed_orgs)
                    if _org_matches(allowed.value, org_type, found_type, orgname)
                ),
                None,
            )
            if org_ind is not None:
                org_hits[org_ind] = True
                diag = diags.source_allowed_by_org(
                    label, CfgCoord(cfg.file_id, cfg.allowed_orgs[org_ind][1].span)
                )
            else:
                diag = diags.source_not_explicitly_allowed(label, type_name, lint_level)
        else:
            diag = diags.source_not_explicitly_allowed(label, type_name, lint_level)

        pack.push(diag)
        sink.append(pack)

    pack = Pack(Check.SOURCES)

    for hit, src in zip(source_hits, cfg.allowed_sources):
        # Disallowing crates.io requires setting the allowed registries explicitly
        if hit or src.url.value == CRATES_IO_URL:
            continue
        pack.push(diags.unmatched_allow_source(CfgCoord(cfg.file_id, src.url.span)))

    for hit, (org_type, org) in zip(org_hits, cfg.allowed_orgs):
        if not hit:
            pack.push(diags.unmatched_allow_org(CfgCoord(cfg.file_id, org.span), org_type))

    if len(pack):
        sink.append(pack)

    return sink