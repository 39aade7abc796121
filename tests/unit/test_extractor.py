from __future__ import annotations

from fixcache.extractor import aggregate_files, extract_files
from fixcache.models import ChangedFile, Commit


def test_extract_unions_added_and_modified_minus_skip_paths() -> None:
    commit = Commit(sha="1", message="fix", modified=["a/b.go", "vendor/x.go"], added=["c.go"])
    assert set(extract_files(commit, {"vendor/"})) == {"a/b.go", "c.go"}


def test_extract_never_includes_deleted_files() -> None:
    commit = Commit(sha="1", message="fix", modified=["a.py"], deleted=["gone.py"])
    assert extract_files(commit, set()) == ["a.py"]


def test_extract_drops_duplicates() -> None:
    commit = Commit(sha="1", message="fix", modified=["a.py", "a.py"], added=["a.py", "b.py"])
    assert extract_files(commit, set()) == ["a.py", "b.py"]


def test_aggregate_only_counts_fix_commits_across_push() -> None:
    commits = [
        Commit(sha="1", message="Fix crash", modified=["a.py"]),
        Commit(sha="2", message="Add docs", modified=["docs.md"]),
        Commit(sha="3", message="bug in parser", modified=["b.py", "a.py"], added=["vendor/lib.py"]),
    ]
    assert aggregate_files(commits, {"fix", "bug"}, {"vendor/"}) == ["a.py", "b.py"]


def test_commit_from_push_payload_reads_removed_as_deleted() -> None:
    commit = Commit.from_push_payload(
        {"id": "abc", "message": "fix", "added": ["n.py"], "modified": ["m.py"], "removed": ["r.py"]}
    )
    assert commit.sha == "abc"
    assert commit.deleted == ["r.py"]
    assert set(extract_files(commit, set())) == {"n.py", "m.py"}


def test_commit_from_changed_files_maps_statuses() -> None:
    commit = Commit.from_changed_files(
        "abc",
        "fix",
        [
            ChangedFile("new.py", "added"),
            ChangedFile("old.py", "modified"),
            ChangedFile("moved.py", "renamed"),
            ChangedFile("dead.py", "removed"),
        ],
    )
    assert commit.added == ["new.py"]
    assert commit.modified == ["old.py", "moved.py"]
    assert commit.deleted == ["dead.py"]
