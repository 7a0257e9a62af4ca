"""Diagnostics emitted by the sources check."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from depvet.diag import CfgCoord, Diagnostic, Label, Severity


class Code(StrEnum):
    """Codes of the diagnostics the sources check can emit."""

    GIT_SOURCE_UNDERSPECIFIED = "git-source-underspecified"
    ALLOWED_SOURCE = "allowed-source"
    ALLOWED_BY_ORGANIZATION = "allowed-by-organization"
    SOURCE_NOT_ALLOWED = "source-not-allowed"
    UNMATCHED_SOURCE = "unmatched-source"
    UNMATCHED_ORGANIZATION = "unmatched-organization"


def below_minimum_required_spec(
    src_label: Label, min_spec: Any, actual_spec: Any, min_spec_cfg: CfgCoord
) -> Diagnostic:
    """A git source is less specific than the configured minimum."""
    return (
        Diagnostic(Severity.ERROR)
        .with_message(
            f"'git' source is underspecified, expected '{min_spec}', but found '{actual_spec}'"
        )
        .with_code(Code.GIT_SOURCE_UNDERSPECIFIED)
        .with_labels(
            [src_label, min_spec_cfg.into_label().with_message("minimum spec defined here")]
        )
    )


def explicitly_allowed_source(src_label: Label, type_name: str, allow_cfg: CfgCoord) -> Diagnostic:
    """A source matched an explicit allowance."""
    return (
        Diagnostic(Severity.NOTE)
        .with_message(f"'{type_name}' source explicitly allowed")
        .with_code(Code.ALLOWED_SOURCE)
        .with_labels([src_label, allow_cfg.into_label().with_message("source allowance")])
    )


def source_allowed_by_org(src_label: Label, org_cfg: CfgCoord) -> Diagnostic:
    """A git source belongs to an allowed organization."""
    return (
        Diagnostic(Severity.NOTE)
        .with_message("source allowed by organization allowance")
        .with_code(Code.ALLOWED_BY_ORGANIZATION)
        .with_labels([src_label, org_cfg.into_label().with_message("organization allowance")])
    )


def source_not_explicitly_allowed(src_label: Label, type_name: str, lint_level: Any) -> Diagnostic:
    """A source matched no allowance at all."""
    return (
        Diagnostic(Severity.from_lint_level(lint_level))
        .with_message(f"detected '{type_name}' source not explicitly allowed")
        .with_code(Code.SOURCE_NOT_ALLOWED)
        .with_labels([src_label])
    )


def unmatched_allow_source(allow_src_cfg: CfgCoord) -> Diagnostic:
    """An allowed source was used by no crate."""
    return (
        Diagnostic(Severity.WARNING)
        .with_message("allowed source was not encountered")
        .with_code(Code.UNMATCHED_SOURCE)
        .with_labels(
            [allow_src_cfg.into_label().with_message("no crate source matched these criteria")]
        )
    )


def unmatched_allow_org(allow_org_cfg: CfgCoord, org_type: Any) -> Diagnostic:
    """An allowed organization was used by no crate."""
    return (
        Diagnostic(Severity.WARNING)
        .with_message(f"allowed '{org_type}' organization  was not encountered")
        .with_code(Code.UNMATCHED_ORGANIZATION)
        .with_labels(
            [
                allow_org_cfg.into_label().with_message(
                    "no crate source fell under this organization"
                )
            ]
        )
    )