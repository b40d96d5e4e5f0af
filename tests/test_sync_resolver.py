"""Tests for conflict policies and the create_resolver factory."""

import pytest

from vault_sync.sync.errors import UnresolvedConflictsError
from vault_sync.sync.models import (
    ConflictFile,
    ConflictResolution,
    DeleteLocalAction,
    DeleteRemoteAction,
    DownloadAction,
    UploadAction,
)
from vault_sync.sync.resolver import (
    AskResolver,
    OverwriteLocalResolver,
    OverwriteRemoteResolver,
    PresetResolver,
    create_resolver,
)

CONFLICTS = [
    ConflictFile(path="a.md", remote_content="r1", local_content="l1"),
    ConflictFile(path="b.md", remote_content="r2", local_content="l2"),
]


class TestOverwritePolicies:
    def test_overwrite_local_downloads(self):
        actions, resolutions = OverwriteLocalResolver().resolve(CONFLICTS)
        assert actions == [DownloadAction(path="a.md"), DownloadAction(path="b.md")]
        assert resolutions == []

    def test_overwrite_remote_uploads(self):
        actions, resolutions = OverwriteRemoteResolver().resolve(CONFLICTS)
        assert actions == [UploadAction(path="a.md"), UploadAction(path="b.md")]
        assert resolutions == []

    def test_overwrite_local_keeps_remote_deletion(self):
        conflicts = [
            ConflictFile(
                path="a.md", remote_content="", local_content="l1", remote_deleted=True
            ),
            CONFLICTS[1],
        ]
        actions, _ = OverwriteLocalResolver().resolve(conflicts)
        assert actions == [DeleteLocalAction(path="a.md"), DownloadAction(path="b.md")]

    def test_overwrite_remote_keeps_local_deletion(self):
        conflicts = [
            ConflictFile(
                path="a.md", remote_content="r1", local_content="", local_deleted=True
            ),
            CONFLICTS[1],
        ]
        actions, _ = OverwriteRemoteResolver().resolve(conflicts)
        assert actions == [DeleteRemoteAction(path="a.md"), UploadAction(path="b.md")]


class TestAskResolver:
    def test_callback_receives_conflicts(self):
        seen = []

        def callback(conflicts):
            seen.extend(conflicts)
            return [ConflictResolution(path=c.path, content="merged") for c in conflicts]

        actions, resolutions = AskResolver(callback).resolve(CONFLICTS)
        assert seen == CONFLICTS
        assert actions == [UploadAction(path="a.md"), UploadAction(path="b.md")]
        assert [r.content for r in resolutions] == ["merged", "merged"]

    def test_unknown_paths_ignored(self):
        def callback(conflicts):
            return [
                ConflictResolution(path="a.md", content="m"),
                ConflictResolution(path="other.md", content="x"),
            ]

        actions, resolutions = AskResolver(callback).resolve(CONFLICTS)
        assert actions == [UploadAction(path="a.md")]
        assert [r.path for r in resolutions] == ["a.md"]


class TestPresetResolver:
    def test_all_supplied(self):
        preset = [
            ConflictResolution(path="b.md", content="B"),
            ConflictResolution(path="a.md", content="A"),
        ]
        actions, resolutions = PresetResolver(preset).resolve(CONFLICTS)
        assert [a.path for a in actions] == ["a.md", "b.md"]
        assert [r.content for r in resolutions] == ["A", "B"]

    def test_missing_resolution_raises_with_conflicts(self):
        preset = [ConflictResolution(path="a.md", content="A")]
        with pytest.raises(UnresolvedConflictsError) as exc_info:
            PresetResolver(preset).resolve(CONFLICTS)
        assert [c.path for c in exc_info.value.conflicts] == ["b.md"]
        assert "b.md" in str(exc_info.value)

    def test_no_conflicts_no_actions(self):
        assert PresetResolver().resolve([]) == ([], [])


class TestFactory:
    def test_overwrite_strategies(self):
        assert isinstance(create_resolver("overwrite_local"), OverwriteLocalResolver)
        assert isinstance(create_resolver("overwrite_remote"), OverwriteRemoteResolver)

    def test_ask_with_callback(self):
        assert isinstance(create_resolver("ask", callback=lambda c: []), AskResolver)

    def test_ask_without_callback(self):
        assert isinstance(create_resolver("ask"), PresetResolver)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            create_resolver("merge")
