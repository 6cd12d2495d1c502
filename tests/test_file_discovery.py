import os

import pytest

from sacl.errors import PathValidationError
from sacl.indexer.file_discovery import FileDiscovery


@pytest.fixture
def repo(tmp_path, write_repo):
    return write_repo(
        tmp_path / "repo",
        {
            "src/index.ts": "export const a = 1;\n",
            "src/lib/index.js": "module.exports = {};\n",
            "src/util.spec.js": "test('x', () => {});\n",
            "pkg/__init__.py": "",
            "pkg/models.py": "class A: pass\n",
            "tests/test_models.py": "def test_a(): pass\n",
            "build/out.js": "var a;\n",
            "generated/schema.py": "X = 1\n",
            "README.md": "# readme\n",
            ".gitignore": "generated/\n",
        },
    )


def test_lists_supported_files(repo):
    files = FileDiscovery(str(repo)).list_source_files()

    relative = [os.path.relpath(path, repo) for path in files]
    assert relative == [
        "pkg/__init__.py",
        "pkg/models.py",
        "src/index.ts",
        "src/lib/index.js",
    ]


def test_gitignore_can_be_disabled(repo):
    files = FileDiscovery(str(repo), follow_gitignore=False).list_source_files()

    assert str(repo / "generated" / "schema.py") in files


def test_custom_extensions_and_exclusions(repo):
    discovery = FileDiscovery(str(repo), extensions=[".py"], exclude_dirs=[], exclude_files=[])

    relative = {os.path.relpath(path, repo) for path in discovery.list_source_files()}
    assert "tests/test_models.py" in relative
    assert not any(path.endswith(".js") for path in relative)


def test_missing_root(tmp_path):
    assert FileDiscovery(str(tmp_path / "nope")).list_source_files() == []


class TestValidatePath:
    def test_relative_and_absolute(self, repo):
        discovery = FileDiscovery(str(repo))

        assert discovery.validate_path("src/index.ts") == str(repo / "src" / "index.ts")
        assert discovery.validate_path(str(repo / "pkg" / ".." / "src")) == str(repo / "src")

    @pytest.mark.parametrize("path", ["/etc/passwd", "../outside.py", "src/../../x.js"])
    def test_rejects_escapes(self, repo, path):
        with pytest.raises(PathValidationError):
            FileDiscovery(str(repo)).validate_path(path)

    def test_sibling_with_common_prefix(self, tmp_path, repo):
        with pytest.raises(PathValidationError):
            FileDiscovery(str(repo)).validate_path(str(tmp_path / "repo-other" / "a.py"))

    def test_symlink_escaping_root(self, tmp_path, repo):
        secret = tmp_path / "secret.py"
        secret.write_text("TOKEN = \"abc\"\n")
        (repo / "pkg" / "link.py").symlink_to(secret)
        discovery = FileDiscovery(str(repo))

        with pytest.raises(PathValidationError):
            discovery.validate_path("pkg/link.py")
        assert str(repo / "pkg" / "link.py") not in discovery.list_source_files()

    def test_symlink_inside_root(self, repo):
        (repo / "pkg" / "alias.py").symlink_to(repo / "pkg" / "models.py")
        discovery = FileDiscovery(str(repo))

        assert discovery.validate_path("pkg/alias.py") == str(repo / "pkg" / "alias.py")
        assert str(repo / "pkg" / "alias.py") in discovery.list_source_files()


class TestResolveImportTarget:
    def test_extensionless_paths(self, repo):
        discovery = FileDiscovery(str(repo))

        assert discovery.resolve_import_target(str(repo / "src" / "index")) == str(
            repo / "src" / "index.ts"
        )
        assert discovery.resolve_import_target(str(repo / "src" / "lib")) == str(
            repo / "src" / "lib" / "index.js"
        )
        assert discovery.resolve_import_target(str(repo / "pkg")) == str(repo / "pkg" / "__init__.py")

    def test_dotted_modules(self, repo):
        discovery = FileDiscovery(str(repo))

        assert discovery.resolve_import_target("pkg.models") == str(repo / "pkg" / "models.py")
        assert discovery.resolve_import_target("requests") == "requests"
        assert discovery.resolve_import_target("@scope/pkg") == "@scope/pkg"

    def test_unknown_absolute_target(self, repo):
        missing = str(repo / "src" / "missing")

        assert FileDiscovery(str(repo)).resolve_import_target(missing) == missing
