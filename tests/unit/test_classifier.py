from __future__ import annotations

from fixcache.classifier import is_fix_message


def test_fix_keyword_matches_case_insensitively() -> None:
    assert is_fix_message("Fixed null pointer in parser", {"fix"}) is True
    assert is_fix_message("BUGFIX: handle empty input", {"bug"}) is True


def test_non_fix_message_does_not_match() -> None:
    assert is_fix_message("Add new feature", {"fix", "bug"}) is False


def test_empty_keyword_set_never_matches() -> None:
    assert is_fix_message("fix everything", set()) is False


def test_substring_match_inside_words() -> None:
    assert is_fix_message("prefix handling for paths", {"fix"}) is True


def test_empty_message() -> None:
    assert is_fix_message("", {"fix"}) is False
