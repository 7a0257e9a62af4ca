"""Diagnostics emitted by the licenses check."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Iterable

from depvet.core import Krate, Spanned
from depvet.diag import CfgCoord, Diagnostic, FileId, Label, Severity


class Code(StrEnum):
    """Codes of the diagnostics the licenses check can emit."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNLICENSED = "unlicensed"
    SKIPPED_PRIVATE_WORKSPACE_CRATE = "skipped-private-workspace-crate"
    LICENSE_NOT_ENCOUNTERED = "license-not-encountered"
    LICENSE_EXCEPTION_NOT_ENCOUNTERED = "license-exception-not-encountered"
    MISSING_CLARIFICATION_FILE = "missing-clarification-file"


def unlicensed(krate: Krate, severity: Severity, breadcrumbs: Iterable[Label]) -> Diagnostic:
    """No license information could be determined for a crate."""
    return (
        Diagnostic(severity)
        .with_message(f"{krate} is unlicensed")
        .with_code(Code.UNLICENSED)
        .with_labels(breadcrumbs)
    )


def skipped_private_workspace_crate(krate: Krate) -> Diagnostic:
    """A private crate was not checked."""
    return (
        Diagnostic(Severity.NOTE)
        .with_message(f"skipping private workspace crate '{krate}'")
        .with_code(Code.SKIPPED_PRIVATE_WORKSPACE_CRATE)
    )


def unmatched_license_allowance(severity: Severity, allowed_license_cfg: CfgCoord) -> Diagnostic:
    """An allowed license was used by no crate."""
    return (
        Diagnostic(severity)
        .with_message("license was not encountered")
        .with_code(Code.LICENSE_NOT_ENCOUNTERED)
        .with_labels(
            [allowed_license_cfg.into_label().with_message("unmatched license allowance")]
        )
    )


def unmatched_license_exception(license_exc_cfg: CfgCoord) -> Diagnostic:
    """A license exception applied to no crate."""
    return (
        Diagnostic(Severity.WARNING)
        .with_message("license exception was not encountered")
        .with_code(Code.LICENSE_EXCEPTION_NOT_ENCOUNTERED)
        .with_labels([license_exc_cfg.into_label().with_message("unmatched license exception")])
    )


def missing_clarification_file(expected: Spanned[Any], cfg_file_id: FileId) -> Label:
    """A label pointing at a clarified license file that could not be found."""
    return Label.secondary(cfg_file_id, expected.span).with_message(
        "unable to locate specified license file"
    )