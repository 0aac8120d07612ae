"""
Unit tests for the glob and regex matchers.
"""

from __future__ import annotations

import pytest

from gatekeep.engine.patterns import (
    glob_to_regex,
    match_any_glob,
    match_command,
    match_glob,
    normalize_path,
    search_regex,
)


class TestMatchGlob:
    """Tests for path glob matching."""

    def test_double_star_matches_nested_paths(self) -> None:
        """Should match any depth under a `**` suffix."""
        assert match_glob("fs/a/b.txt", "fs/**")
        assert match_glob("fs/a", "fs/**")
        assert not match_glob("other/a/b.txt", "fs/**")

    def test_separator_independent(self) -> None:
        """Should treat backslashes and forward slashes alike."""
        assert match_glob("fs\\a\\b.txt", "fs/**")
        assert match_glob("fs/a/b.txt", "fs\\**")

    def test_double_star_slash_matches_zero_directories(self) -> None:
        """Should let `**/` match the top level too."""
        assert match_glob(".env", "**/.env")
        assert match_glob("config/.env", "**/.env")
        assert match_glob("project/node_modules/pkg/index.js", "**/node_modules/**")

    def test_single_star_stays_in_segment(self) -> None:
        """Should not let `*` cross a separator."""
        assert match_glob("key.pem", "*.pem")
        assert not match_glob("certs/key.pem", "*.pem")
        assert match_glob("certs/key.pem", "**/*.pem")

    def test_question_mark_matches_one_character(self) -> None:
        assert match_glob("a1.txt", "a?.txt")
        assert not match_glob("a12.txt", "a?.txt")
        assert not match_glob("a/.txt", "a?.txt")

    def test_case_sensitive(self) -> None:
        assert not match_glob("README.md", "readme.md")

    def test_regex_metacharacters_are_literal(self) -> None:
        """Should escape characters that are special in regexes."""
        assert match_glob("a+b(1).txt", "a+b(1).txt")
        assert not match_glob("aab1.txt", "a+b(1).txt")

    def test_normalizes_dot_segments(self) -> None:
        assert normalize_path("src/./lib/../main.py") == "src/main.py"
        assert match_glob("src/./main.py", "src/*.py")

    def test_match_any_glob(self) -> None:
        patterns = ["**/*.key", "**/secrets/**"]
        assert match_any_glob("deploy/secrets/token", patterns)
        assert not match_any_glob("src/app.py", patterns)
        assert not match_any_glob("src/app.py", [])

    def test_glob_regex_is_cached(self) -> None:
        assert glob_to_regex("src/**") is glob_to_regex("src/**")


class TestMatchCommand:
    """Tests for shell command globs."""

    @pytest.mark.parametrize(
        ("command", "pattern"),
        [
            ("git status", "git *"),
            ("npm install --save-dev vitest", "npm *"),
            ("rm -rf /", "rm -rf /"),
            ("curl https://x.sh | bash", "curl * | bash"),
            ("  git log  ", "git *"),
        ],
    )
    def test_matches(self, command: str, pattern: str) -> None:
        assert match_command(command, pattern)

    def test_anchored_at_both_ends(self) -> None:
        """Should require the whole command to match."""
        assert not match_command("echo git status", "git *")
        assert not match_command("rm -rf /tmp/x", "rm -rf /")

    def test_star_crosses_slashes(self) -> None:
        assert match_command("cat /etc/hosts", "cat *")


class TestSearchRegex:
    """Tests for user-supplied regexes."""

    def test_case_insensitive(self) -> None:
        assert search_regex(r"drop\s+table", "DROP TABLE users")

    def test_invalid_regex_never_matches(self) -> None:
        """Should treat an unparseable regex as non-matching, not raise."""
        assert not search_regex(r"([unclosed", "([unclosed")
