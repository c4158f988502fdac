"""Tests for the working-tree walker, file filters and ignore file."""

from __future__ import annotations

from redactyl.scanner.ignore import IGNORE_FILE_NAME, IgnoreMatcher
from redactyl.scanner.walk import count_targets, is_binary, matches_any, walk_tree


def _paths(config, ignore=None):
    return [f.path for f in walk_tree(config, ignore or IgnoreMatcher())]


class TestIgnoreMatcher:
    """Tests for IgnoreMatcher."""

    def test_gitignore_semantics(self):
        """Test directory, glob and negation patterns."""
        matcher = IgnoreMatcher(["# comment", "", "fixtures/", "*.pem", "!keep.pem"])

        assert matcher.match("fixtures/a.txt")
        assert matcher.match("certs/server.pem")
        assert not matcher.match("keep.pem")
        assert not matcher.match("src/app.py")

    def test_missing_file(self, tmp_path):
        """Test a missing ignore file excludes nothing."""
        matcher = IgnoreMatcher.load(tmp_path / IGNORE_FILE_NAME)

        assert matcher.patterns == []
        assert not matcher.match("anything")


class TestFilters:
    """Tests for glob and binary helpers."""

    def test_matches_basename_or_path(self):
        """Test globs match either the full path or the basename."""
        assert matches_any("src/app/.env", [".env"])
        assert matches_any("src/app/main.py", ["src/*"])
        assert not matches_any("src/app/main.py", ["*.js"])

    def test_is_binary(self):
        """Test NUL bytes, image types and zip magic count as binary."""
        assert is_binary("blob.dat", b"abc\x00def")
        assert is_binary("logo.png", b"whatever")
        assert is_binary("noext", b"\x89PNG\r\n\x1a\nrest")
        assert is_binary("noext", b"PK\x03\x04")
        assert not is_binary("app.py", b"print('hi')\n")


class TestWalkTree:
    """Tests for walk_tree."""

    def test_yields_sorted_text_files(self, repo, make_config):
        """Test text files are yielded in sorted order with POSIX paths."""
        (repo / "src").mkdir()
        (repo / "src" / "b.py").write_text("b = 1\n")
        (repo / "a.txt").write_text("a\n")
        (repo / "image.png").write_bytes(b"\x89PNG\r\n\x1a\n")

        assert _paths(make_config()) == ["a.txt", "src/b.py"]

    def test_include_and_exclude(self, repo, make_config):
        """Test include globs restrict and exclude globs drop paths."""
        (repo / "a.py").write_text("x\n")
        (repo / "b.js").write_text("x\n")
        (repo / "c.py").write_text("x\n")

        assert _paths(make_config(include=["*.py"], exclude=["c.py"])) == ["a.py"]

    def test_max_bytes(self, repo, make_config):
        """Test files over the size cutoff are skipped."""
        (repo / "small.txt").write_text("x")
        (repo / "big.txt").write_text("x" * 100)

        assert _paths(make_config(max_bytes=10)) == ["small.txt"]

    def test_ignore_marker(self, repo, make_config):
        """Test the redactyl:ignore-file marker excludes the whole file."""
        (repo / "fixture.env").write_text("# redactyl:ignore-file\nTOKEN=abc\n")
        (repo / "real.env").write_text("TOKEN=abc\n")

        assert _paths(make_config()) == ["real.env"]

    def test_default_excludes(self, repo, make_config):
        """Test vendor directories and lock files are skipped by default."""
        (repo / "node_modules").mkdir()
        (repo / "node_modules" / "pkg.js").write_text("x\n")
        (repo / "poetry.lock").write_text("x\n")
        (repo / "app.js").write_text("x\n")

        assert _paths(make_config()) == ["app.js"]
        assert sorted(_paths(make_config(default_excludes=False))) == [
            "app.js",
            "node_modules/pkg.js",
            "poetry.lock",
        ]

    def test_engine_files_never_scanned(self, repo, make_config):
        """Test the cache, baseline and ignore files are never yielded."""
        (repo / ".redactylcache.json").write_text("{}")
        (repo / "redactyl.baseline.json").write_text("{}")
        (repo / IGNORE_FILE_NAME).write_text("")
        (repo / "a.txt").write_text("a\n")

        assert _paths(make_config()) == ["a.txt"]

    def test_ignore_file_prunes_directory(self, repo, make_config):
        """Test an ignored directory is not descended into."""
        (repo / "fixtures").mkdir()
        (repo / "fixtures" / "secret.txt").write_text("x\n")
        (repo / "a.txt").write_text("a\n")

        assert _paths(make_config(), IgnoreMatcher(["fixtures/"])) == ["a.txt"]

    def test_count_targets(self, repo, make_config):
        """Test target counting follows the same path filters."""
        (repo / "a.txt").write_text("a\n")
        (repo / "b.txt").write_text("b\n")
        (repo / IGNORE_FILE_NAME).write_text("b.txt\n")

        assert count_targets(make_config()) == 1
