import pytest

from doc_renew.resolver import WorkspaceResolver, clean_reference, is_external


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "site" / "images").mkdir(parents=True)
    (tmp_path / "site" / "images" / "hero.jpg").write_bytes(b"hero")
    (tmp_path / "assets" / "deep" / "images").mkdir(parents=True)
    (tmp_path / "assets" / "deep" / "images" / "logo.png").write_bytes(b"logo")
    (tmp_path / "logo.png").write_bytes(b"top logo")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "vendor.gif").write_bytes(b"vendor")
    return tmp_path


class TestReferences:

    @pytest.mark.parametrize("reference", [
        "http://example.com/a.jpg",
        "https://example.com/a.jpg",
        "//cdn.example.com/a.jpg",
        "data:image/png;base64,AAAA",
    ])
    def test_external(self, reference):
        assert is_external(reference)

    @pytest.mark.parametrize("reference", ["a.jpg", "./images/a.jpg", "/images/a.jpg", "../a.jpg"])
    def test_not_external(self, reference):
        assert not is_external(reference)

    def test_clean_reference(self):
        assert clean_reference("./images/my%20photo.jpg?v=2#top") == "images/my photo.jpg"
        assert clean_reference("/images/a.jpg") == "images/a.jpg"


class TestResolve:

    def test_unique_match(self, workspace):
        resolver = WorkspaceResolver(workspace)
        expected = (workspace / "site" / "images" / "hero.jpg").resolve()
        assert resolver.resolve("images/hero.jpg") == expected
        assert resolver.resolve("hero.jpg") == expected
        assert resolver.resolve("./images/hero.jpg?v=3") == expected

    def test_no_match_returns_none(self, workspace):
        resolver = WorkspaceResolver(workspace)
        assert resolver.resolve("missing.jpg") is None

    def test_empty_and_external_return_none(self, workspace):
        resolver = WorkspaceResolver(workspace)
        assert resolver.resolve("") is None
        assert resolver.resolve("https://example.com/hero.jpg") is None

    def test_excluded_directories(self, workspace):
        resolver = WorkspaceResolver(workspace)
        assert resolver.resolve("vendor.gif") is None

    def test_parent_references_do_not_glob(self, workspace):
        resolver = WorkspaceResolver(workspace)
        assert resolver.candidates("../logo.png") == []

    def test_multiple_matches_prefer_shallowest(self, workspace):
        resolver = WorkspaceResolver(workspace)
        assert resolver.resolve("logo.png") == (workspace / "logo.png").resolve()
        assert len(resolver.candidates("logo.png")) == 2

    def test_document_directory_preferred(self, workspace):
        resolver = WorkspaceResolver(workspace)
        document_dir = workspace / "assets" / "deep"
        expected = (workspace / "assets" / "deep" / "images" / "logo.png").resolve()
        assert resolver.resolve("images/logo.png", document_dir) == expected
        assert resolver.resolve("logo.png", document_dir) == (workspace / "logo.png").resolve()

    def test_document_relative_parent_reference(self, workspace):
        resolver = WorkspaceResolver(workspace)
        document_dir = workspace / "site" / "pages"
        document_dir.mkdir()
        expected = (workspace / "site" / "images" / "hero.jpg").resolve()
        assert resolver.resolve("../images/hero.jpg", document_dir) == expected
