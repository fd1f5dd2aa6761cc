"""
Tests for attic entries.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import yaml

from gitrack.core.issues import Issue
from gitrack.core.issues.merge import merge_issues
from gitrack.core.issues.parser import parse_issue
from gitrack.core.sync.attic import Attic, AtticEntry

ISSUE_ID = "is-01hq3k5v7w8x9y0z1a2b3c4d5e"
T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def conflicting_merge():
    base = Issue(id=ISSUE_ID, title="Base", priority=2, created_at=T0, updated_at=T0)
    local = base.model_copy(update={"title": "Local", "priority": 1, "updated_at": T0 + timedelta(1)})
    remote = base.model_copy(update={"title": "Remote", "priority": 3, "updated_at": T0 + timedelta(2)})
    return merge_issues(base, local, remote)


class TestAtticEntry:
    def test_from_merge(self) -> None:
        entry = AtticEntry.from_merge(conflicting_merge())

        assert entry.issue_id == ISSUE_ID
        assert entry.winner_source == "remote"
        assert entry.loser_source == "local"
        assert {f.field for f in entry.fields} == {"title", "priority"}
        assert parse_issue(entry.lost_document).title == "Local"

    def test_filename_shape(self) -> None:
        entry = AtticEntry.from_merge(conflicting_merge())
        entry.recorded_at = datetime(2025, 3, 4, 5, 6, 7, 89_000, tzinfo=timezone.utc)
        name = entry.filename()
        assert name.startswith("20250304T050607089Z-")
        assert name.endswith(".yml")


class TestAttic:
    def test_record_and_read_back(self, tmp_path: Path) -> None:
        attic = Attic(tmp_path)
        rel_path = attic.record(AtticEntry.from_merge(conflicting_merge()))

        assert rel_path.startswith(f"attic/conflicts/{ISSUE_ID}/")
        data = yaml.safe_load((tmp_path / rel_path).read_text())
        assert data["issue_id"] == ISSUE_ID

        entries = attic.entries(ISSUE_ID)
        assert len(entries) == 1
        assert entries[0].lost_version == 1

    def test_never_overwrites(self, tmp_path: Path) -> None:
        attic = Attic(tmp_path)
        entry = AtticEntry.from_merge(conflicting_merge())

        first = attic.record(entry)
        second = attic.record(entry)

        assert first != second
        assert len(attic.entries(ISSUE_ID)) == 2

    def test_record_file(self, tmp_path: Path) -> None:
        rel_path = Attic(tmp_path).record_file("docs/README.md", "remote copy\n")
        assert rel_path.startswith("attic/files/")
        assert yaml.safe_load((tmp_path / rel_path).read_text())["lost_content"] == "remote copy\n"

    def test_no_entries(self, tmp_path: Path) -> None:
        assert Attic(tmp_path).entries(ISSUE_ID) == []
