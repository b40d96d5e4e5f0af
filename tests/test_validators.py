"""Tests for path normalisation and validation."""

import pytest

from vault_sync.validators import (
    format_validation_error,
    normalize_path,
    validate_relative_path,
)


class TestNormalizePath:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("notes/a.md", "notes/a.md"),
            ("notes\\sub\\a.md", "notes/sub/a.md"),
            ("/notes//a.md/", "notes/a.md"),
            ("./notes/./a.md", "notes/a.md"),
            ("", ""),
            ("/", ""),
            (".", ""),
        ],
    )
    def test_normalisation(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_case_preserved(self):
        assert normalize_path("Notes/README.md") == "Notes/README.md"


class TestValidateRelativePath:
    def test_valid(self):
        assert validate_relative_path("notes/a.md") == (True, "")

    @pytest.mark.parametrize("path", ["", "   "])
    def test_empty(self, path):
        assert validate_relative_path(path) == (False, "Path cannot be empty")

    @pytest.mark.parametrize("path", ["/etc/passwd", "C:/vault/a.md"])
    def test_absolute(self, path):
        is_valid, reason = validate_relative_path(path)
        assert not is_valid
        assert "vault-relative" in reason

    @pytest.mark.parametrize("path", ["../a.md", "notes/../../a.md", "a\\..\\b"])
    def test_traversal(self, path):
        is_valid, reason = validate_relative_path(path)
        assert not is_valid
        assert "'..'" in reason

    def test_dots_inside_names_allowed(self):
        assert validate_relative_path("notes/..hidden..md")[0]


def test_format_validation_error():
    assert format_validation_error("Path", "cannot be empty") == "Path cannot be empty"
