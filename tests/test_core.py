import pytest
import semver

from depvet.core import (
    CRATES_IO_HTTP_INDEX,
    CRATES_IO_INDEX,
    CRATES_IO_SPARSE_DIR,
    GitSpec,
    Krate,
    LintLevel,
    PackageSpec,
    Source,
    SourceKind,
    Spanned,
    VersionReq,
    binary_search,
    contains,
    hash_bytes,
    match_krate,
    match_req,
    normalize_git_url,
)


def test_parses_sources():
    crates_io_git = Source.from_metadata(f"registry+{CRATES_IO_INDEX}", "")
    crates_io_sparse = Source.from_metadata(CRATES_IO_HTTP_INDEX, "")
    crates_io_sparse_but_git = Source.from_metadata(
        f"registry+{CRATES_IO_INDEX}",
        f"registry/src/{CRATES_IO_SPARSE_DIR}/cargo-deny-0.69.0/Cargo.toml",
    )

    for src in (crates_io_git, crates_io_sparse, crates_io_sparse_but_git):
        assert src.is_registry()
        assert src.is_crates_io()

    assert not crates_io_git.is_sparse
    assert crates_io_sparse.is_sparse
    assert crates_io_sparse_but_git.is_sparse

    assert Source.from_metadata("registry+https://my-own-my-precious.com/", "").is_registry()
    assert Source.from_metadata("sparse+https://my-registry.rs/", "").is_registry()

    src = Source.from_metadata(
        "git+https://github.com/EmbarkStudios/wasmtime?branch=v6.0.1-profiler"
        "#84b8cacceacb585ef53774c3790b2372ba080067",
        "",
    )
    assert src.is_git()
    assert src.git_spec() is GitSpec.BRANCH


def test_source_kinds_and_display():
    reg = Source.from_metadata("registry+https://my-own-my-precious.com/", "")
    sparse = Source.from_metadata("sparse+https://my-registry.rs/", "")
    assert reg.kind is SourceKind.REGISTRY
    assert sparse.kind is SourceKind.SPARSE
    assert str(Source.crates_io(True)) == f"registry+{CRATES_IO_INDEX}"
    assert str(reg) == "registry+https://my-own-my-precious.com/"
    assert str(sparse) == "sparse+https://my-registry.rs/"
    assert reg.git_spec() is None


def test_source_errors():
    with pytest.raises(ValueError):
        Source.from_metadata("https://example.com", "")
    with pytest.raises(ValueError):
        Source.from_metadata("svn+https://example.com/repo", "")


def test_normalize_git_url():
    assert normalize_git_url("https://github.com/EmbarkStudios/cargo-deny.git") == (
        "https://github.com/EmbarkStudios/cargo-deny",
        GitSpec.ANY,
    )
    assert normalize_git_url("https://github.com/EmbarkStudios/cargo-deny/") == (
        "https://github.com/EmbarkStudios/cargo-deny",
        GitSpec.ANY,
    )
    assert normalize_git_url("https://github.com/a/b?branch=master") == (
        "https://github.com/a/b",
        GitSpec.BRANCH,
    )
    assert normalize_git_url("https://github.com/a/b?rev=abc&branch=master") == (
        "https://github.com/a/b?rev=abc",
        GitSpec.BRANCH,
    )
    assert normalize_git_url("https://github.com/a/b?tag=v1")[1] is GitSpec.TAG
    assert normalize_git_url("https://github.com/a/b?rev=abc")[1] is GitSpec.REV


def test_git_spec_ordering_and_parse():
    assert GitSpec.ANY < GitSpec.BRANCH < GitSpec.TAG < GitSpec.REV
    assert GitSpec.parse("tag") is GitSpec.TAG
    assert str(GitSpec.REV) == "rev"
    with pytest.raises(ValueError):
        GitSpec.parse("commit")


def test_lint_level_parse():
    assert LintLevel.parse("deny") is LintLevel.DENY
    with pytest.raises(ValueError, match="allow, warn, deny"):
        LintLevel.parse("forbid")


@pytest.mark.parametrize(
    "req, version, expected",
    [
        ("1.2.3", "1.2.3", True),
        ("1.2.3", "1.9.0", True),
        ("1.2.3", "2.0.0", False),
        ("1.2.3", "1.2.2", False),
        ("^0.2.3", "0.2.9", True),
        ("^0.2.3", "0.3.0", False),
        ("^0.0.3", "0.0.4", False),
        ("~1.2", "1.2.9", True),
        ("~1.2", "1.3.0", False),
        (">=1.0, <2.0", "1.5.0", True),
        (">=1.0, <2.0", "2.0.0", False),
        ("*", "5.0.0", True),
        ("*", "1.0.0-alpha", False),
        ("=1.2.3-alpha", "1.2.3-alpha", True),
        (">1.0.0", "1.1.0-alpha", False),
        ("1.*", "1.7.0", True),
        ("1.*", "2.0.0", False),
        ("<=1.2", "1.2.9", True),
        (">1.2", "1.2.9", False),
    ],
)
def test_version_req_matches(req, version, expected):
    assert VersionReq.parse(req).matches(version) is expected


@pytest.mark.parametrize("req", ["", ">=1.*", "1.2-alpha", "a.b", "1.2.3.4", "01.2"])
def test_version_req_parse_errors(req):
    with pytest.raises(ValueError):
        VersionReq.parse(req)


def test_match_req_without_requirement():
    assert match_req(semver.Version(9, 9, 9), None)
    assert not match_req("1.0.0", VersionReq.parse("2"))


def test_hash_bytes_known_values():
    assert hash_bytes(b"") == 0x02CC5D05
    assert hash_bytes(b"abc") == 0x32D153FF
    assert hash_bytes(b"Nobody inspects the spammish repetition") == 0xE2293B2F


def _package(**overrides):
    pkg = {
        "name": "foo",
        "id": "foo 1.0.0",
        "version": "1.0.0",
        "source": f"registry+{CRATES_IO_INDEX}",
        "manifest_path": "/home/cargo/registry/src/x/foo-1.0.0/Cargo.toml",
        "license": "MIT/Apache-2.0",
        "dependencies": [{"name": "zeta"}, {"name": "alpha"}],
        "features": {"std": [], "default": ["std"]},
    }
    pkg.update(overrides)
    return pkg


def test_krate_from_package():
    krate = Krate.from_package(_package())
    assert krate.license == "MIT OR Apache-2.0"
    assert [d["name"] for d in krate.deps] == ["alpha", "zeta"]
    assert list(krate.features) == ["default", "std"]
    assert str(krate) == "foo = 1.0.0"
    assert krate.is_crates_io()
    assert not krate.is_git_source()


def test_krate_from_package_bad_source():
    krate = Krate.from_package(_package(source="bogus"))
    assert krate.source is None
    assert not krate.is_crates_io()


def test_krate_identity_is_id():
    a = Krate(name="a", id="a 1.0.0")
    b = Krate(name="other", id="a 1.0.0")
    c = Krate(name="c", id="c 1.0.0")
    assert a == b
    assert sorted([c, a]) == [a, c]


def test_krate_is_private():
    assert not Krate(publish=None).is_private(["corp"])
    assert Krate(publish=[]).is_private([])
    assert Krate(publish=["corp"]).is_private(["corp"])
    assert not Krate(publish=["corp", "crates-io"]).is_private(["corp"])


def test_krate_matches_url():
    crates_io = Krate(source=Source.crates_io(False))
    assert crates_io.matches_url(CRATES_IO_INDEX, True)
    assert crates_io.matches_url("https://index.crates.io/", True)

    reg = Krate(source=Source.from_metadata("registry+https://reg.example.com/index", ""))
    assert reg.matches_url("https://reg.example.com/index", True)
    assert not reg.matches_url("https://reg.example.com/other", True)
    assert reg.matches_url("https://reg.example.com/", False)
    assert not Krate().matches_url("https://reg.example.com/", False)


def test_match_krate():
    krate = Krate(name="foo", id="foo 1.2.0", version=semver.Version(1, 2, 0))
    assert match_krate(krate, PackageSpec(Spanned("foo")))
    assert match_krate(krate, PackageSpec(Spanned("foo"), VersionReq.parse("^1.1")))
    assert not match_krate(krate, PackageSpec(Spanned("foo"), VersionReq.parse("<1")))
    assert not match_krate(krate, PackageSpec(Spanned("bar")))


def test_binary_search_and_contains():
    items = ["a", "c", "e"]
    assert binary_search(items, "c") == (True, 1)
    assert binary_search(items, "d") == (False, 2)
    assert contains(items, "e")
    assert not contains(items, "b")