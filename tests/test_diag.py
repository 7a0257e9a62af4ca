import pytest

from depvet.diag import (
    CfgCoord,
    Check,
    Diagnostic,
    Label,
    LabelStyle,
    Pack,
    Severity,
)


@pytest.mark.parametrize(
    "level, expected",
    [("allow", Severity.NOTE), ("warn", Severity.WARNING), ("deny", Severity.ERROR)],
)
def test_severity_from_lint_level(level, expected):
    assert Severity.from_lint_level(level) is expected


def test_severity_from_unknown_level():
    with pytest.raises(ValueError):
        Severity.from_lint_level("forbid")


def test_severity_ordering():
    allow = Severity.from_lint_level("allow")
    warn = Severity.from_lint_level("warn")
    deny = Severity.from_lint_level("deny")
    assert Severity.HELP < allow < warn < deny < Severity.BUG
    assert sorted([deny, allow, warn]) == [allow, warn, deny]


def test_label_primary_and_secondary():
    p = Label.primary(3, (4, 9))
    s = Label.secondary(3, range(4, 9))
    assert p.style is LabelStyle.PRIMARY
    assert s.style is LabelStyle.SECONDARY
    assert p.span == s.span == (4, 9)
    assert p.file_id == 3


def test_label_with_message_returns_copy():
    label = Label.primary(0, (1, 2))
    named = label.with_message("source")
    assert named.message == "source"
    assert label.message == ""
    assert named.span == label.span


def test_label_rejects_bad_span():
    with pytest.raises(TypeError):
        Label.primary(0, 5)


def test_diagnostic_builders():
    d = (
        Diagnostic(Severity.ERROR)
        .with_message("failed to parse url")
        .with_code(Check.SOURCES)
        .with_labels([Label.primary(1, (0, 1))])
        .with_notes(["first"])
    )
    assert d.message == "failed to parse url"
    assert d.code == "sources"
    assert len(d.labels) == 1
    assert d.notes == ("first",)


def test_diagnostic_labels_and_notes_append():
    a = Label.primary(1, (0, 1))
    b = Label.secondary(1, (2, 3))
    d = Diagnostic(Severity.NOTE).with_labels([a]).with_labels([b])
    d = d.with_notes(["x"]).with_notes(["y"])
    assert d.labels == (a, b)
    assert d.notes == ("x", "y")


def test_cfg_coord_into_label():
    label = CfgCoord(file=7, span=(10, 20)).into_label()
    assert label.style is LabelStyle.PRIMARY
    assert label.file_id == 7
    assert label.span == (10, 20)


def test_pack_push():
    pack = Pack(Check.LICENSES, kid="foo 1.0.0")
    assert len(pack) == 0
    d = Diagnostic(Severity.WARNING)
    pack.push(d)
    pack.push(d)
    assert len(pack) == 2
    assert list(pack) == [d, d]
    assert pack.kid == "foo 1.0.0"