from depvet.diag import CfgCoord, Label, Severity
from depvet.sources_diags import (
    Code,
    below_minimum_required_spec,
    explicitly_allowed_source,
    source_allowed_by_org,
    source_not_explicitly_allowed,
    unmatched_allow_org,
    unmatched_allow_source,
)
from depvet.core import GitSpec, LintLevel

SRC = Label.primary(3, (10, 40)).with_message("source")
COORD = CfgCoord(7, (1, 9))


def test_code_values_are_kebab_case():
    spec = below_minimum_required_spec(SRC, GitSpec.TAG, GitSpec.ANY, COORD)
    org = unmatched_allow_org(COORD, "gitlab.com")
    assert str(spec.code) == str(Code.GIT_SOURCE_UNDERSPECIFIED) == "git-source-underspecified"
    assert str(org.code) == str(Code.UNMATCHED_ORGANIZATION) == "unmatched-organization"


def test_below_minimum_required_spec():
    d = below_minimum_required_spec(SRC, GitSpec.REV, GitSpec.BRANCH, COORD)
    assert d.severity == Severity.ERROR
    assert d.message == "'git' source is underspecified, expected 'rev', but found 'branch'"
    assert d.code == "git-source-underspecified"
    assert d.labels[0] == SRC
    assert d.labels[1].file_id == 7
    assert d.labels[1].span == (1, 9)
    assert d.labels[1].message == "minimum spec defined here"


def test_explicitly_allowed_source():
    d = explicitly_allowed_source(SRC, "git", COORD)
    assert d.severity == Severity.NOTE
    assert d.message == "'git' source explicitly allowed"
    assert d.code == Code.ALLOWED_SOURCE
    assert [label.message for label in d.labels] == ["source", "source allowance"]


def test_source_allowed_by_org():
    d = source_allowed_by_org(SRC, COORD)
    assert d.message == "source allowed by organization allowance"
    assert d.code == "allowed-by-organization"
    assert d.labels[1].message == "organization allowance"


def test_source_not_explicitly_allowed_uses_lint_level():
    deny = source_not_explicitly_allowed(SRC, "registry", LintLevel.DENY)
    warn = source_not_explicitly_allowed(SRC, "registry", LintLevel.WARN)
    assert deny.severity == Severity.ERROR
    assert warn.severity == Severity.WARNING
    assert deny.message == "detected 'registry' source not explicitly allowed"
    assert deny.labels == (SRC,)


def test_unmatched_allow_source():
    d = unmatched_allow_source(COORD)
    assert d.severity == Severity.WARNING
    assert d.message == "allowed source was not encountered"
    assert d.labels[0].message == "no crate source matched these criteria"


def test_unmatched_allow_org():
    d = unmatched_allow_org(COORD, "github.com")
    assert d.message == "allowed 'github.com' organization  was not encountered"
    assert d.code == "unmatched-organization"
    assert d.labels[0].message == "no crate source fell under this organization"