"""Tests for ignore pattern matching."""

from pathlib import Path

from sftpmirror.client.sync.ignore import GlobPathFilter, SubstringPathFilter, relative_posix

BASE = Path("/ws")


class TestRelativePosix:
    """Tests for workspace-relative paths."""

    def test_inside(self) -> None:
        assert relative_posix(BASE / "a" / "b.txt", BASE) == "a/b.txt"

    def test_outside(self) -> None:
        assert relative_posix(Path("/elsewhere/b.txt"), BASE) is None


class TestSubstringPathFilter:
    """Tests for the default substring matcher."""

    def test_no_patterns(self) -> None:
        """Nothing is ignored without patterns."""
        assert SubstringPathFilter().should_ignore(BASE / "a.txt", BASE) is False

    def test_component_match(self) -> None:
        """A pattern naming a directory ignores everything below it."""
        path_filter = SubstringPathFilter([".git", "node_modules"])

        assert path_filter.should_ignore(BASE / ".git", BASE) is True
        assert path_filter.should_ignore(BASE / ".git" / "config", BASE) is True
        assert path_filter.should_ignore(BASE / "web" / "node_modules" / "x.js", BASE) is True
        assert path_filter.should_ignore(BASE / "src" / "main.py", BASE) is False

    def test_matches_inside_names(self) -> None:
        """Patterns match anywhere, including inside file names."""
        path_filter = SubstringPathFilter(["git"])

        assert path_filter.should_ignore(BASE / "digit.txt", BASE) is True
        assert path_filter.should_ignore(BASE / "notes.txt", BASE) is False

    def test_absolute_path_checked(self) -> None:
        """The absolute path is checked as well as the relative one."""
        path_filter = SubstringPathFilter(["ws/"])

        assert path_filter.should_ignore(BASE / "a.txt", BASE) is True

    def test_outside_base(self) -> None:
        """Paths outside the base are matched on their absolute form."""
        path_filter = SubstringPathFilter(["tmp"])

        assert path_filter.should_ignore(Path("/tmp/a.txt"), BASE) is True
        assert path_filter.should_ignore(Path("/var/a.txt"), BASE) is False

    def test_patterns_copy(self) -> None:
        """The patterns property returns a copy."""
        path_filter = SubstringPathFilter([".git"])
        path_filter.patterns.append("x")

        assert path_filter.patterns == [".git"]


class TestGlobPathFilter:
    """Tests for the gitignore-style matcher."""

    def test_bare_name_matches_component(self) -> None:
        """A bare name matches whole path components only."""
        path_filter = GlobPathFilter(["git"])

        assert path_filter.should_ignore(BASE / "git" / "HEAD", BASE) is True
        assert path_filter.should_ignore(BASE / "digit.txt", BASE) is False

    def test_wildcards(self) -> None:
        path_filter = GlobPathFilter(["*.log", "*.tmp"])

        assert path_filter.should_ignore(BASE / "app.log", BASE) is True
        assert path_filter.should_ignore(BASE / "logs" / "file.tmp", BASE) is True
        assert path_filter.should_ignore(BASE / "app.txt", BASE) is False

    def test_directory_pattern(self, tmp_path: Path) -> None:
        """Patterns ending in / match directories and their contents."""
        (tmp_path / "build").mkdir()
        (tmp_path / "build" / "out.o").touch()
        (tmp_path / "build.txt").touch()
        path_filter = GlobPathFilter(["build/"])

        assert path_filter.should_ignore(tmp_path / "build", tmp_path) is True
        assert path_filter.should_ignore(tmp_path / "build" / "out.o", tmp_path) is True
        assert path_filter.should_ignore(tmp_path / "build.txt", tmp_path) is False

    def test_path_pattern(self) -> None:
        """Patterns with a slash match the relative path."""
        path_filter = GlobPathFilter(["docs/*.pdf"])

        assert path_filter.should_ignore(BASE / "docs" / "manual.pdf", BASE) is True
        assert path_filter.should_ignore(BASE / "manual.pdf", BASE) is False

    def test_outside_base_not_ignored(self) -> None:
        assert GlobPathFilter(["*"]).should_ignore(Path("/elsewhere/a"), BASE) is False

    def test_add_pattern(self) -> None:
        path_filter = GlobPathFilter()
        path_filter.add_pattern("*.bak")

        assert path_filter.patterns == ["*.bak"]
        assert path_filter.should_ignore(BASE / "a.bak", BASE) is True
