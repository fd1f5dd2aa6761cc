"""
Tests for the gitrack command line interface.

Commands run through typer's CliRunner against real git repositories,
with the working directory set to the repository under test.
"""

import re
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from gitrack.cli import app
from gitrack.core.config import load_config
from gitrack.core.context import CommandContext
from gitrack.core.ids import codes
from gitrack.core.issues.storage import IssueStore

runner = CliRunner()

DISPLAY_RE = re.compile(r"Created ([a-z]+-[0-9a-z]+)")


@pytest.fixture
def in_project(project, monkeypatch) -> Path:
    monkeypatch.chdir(project.project_root)
    return project.project_root


def create(title: str, *args: str) -> str:
    result = runner.invoke(app, ["create", title, *args])
    assert result.exit_code == 0, result.output
    match = DISPLAY_RE.search(result.output)
    assert match, result.output
    return match.group(1)


class TestMain:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("gitrack ")

    def test_no_command_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Usage" in result.output


class TestInit:
    def test_init(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)

        result = runner.invoke(app, ["init", "--prefix", "Proj"])

        assert result.exit_code == 0, result.output
        assert "Initialized gitrack" in result.output
        assert load_config(git_repo).display.id_prefix == "proj"
        assert (git_repo / ".gitrack" / "data-sync-worktree" / "meta.yml").exists()

    def test_init_twice(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        assert runner.invoke(app, ["init"]).exit_code == 0
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0, result.output

    def test_init_saves_default_prefix(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0, result.output
        saved = yaml.safe_load((git_repo / ".gitrack" / "config.yml").read_text())
        assert saved["display"]["id_prefix"] == "repo"

    def test_reinit_keeps_saved_prefix(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        assert runner.invoke(app, ["init", "--prefix", "proj"]).exit_code == 0

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0, result.output
        assert load_config(git_repo).display.id_prefix == "proj"

    def test_clones_share_display_ids(self, make_clone, run_git, monkeypatch):
        first = make_clone("first")
        monkeypatch.chdir(first)
        assert runner.invoke(app, ["init"]).exit_code == 0
        run_git(first, "add", ".gitrack/config.yml", ".gitrack/.gitignore")
        run_git(first, "commit", "-m", "Add gitrack")
        run_git(first, "push", "origin", "HEAD")
        display = create("Shared")
        assert display.startswith("first-")
        assert runner.invoke(app, ["sync"]).exit_code == 0

        second = make_clone("second")
        monkeypatch.chdir(second)
        assert runner.invoke(app, ["init"]).exit_code == 0
        result = runner.invoke(app, ["resolve", display, "--debug-id"])

        assert result.exit_code == 0, result.output
        assert result.output.startswith(display)
        assert load_config(second).display.id_prefix == "first"

    def test_invalid_prefix(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        result = runner.invoke(app, ["init", "--prefix", "is"])
        assert result.exit_code == 2
        assert not (git_repo / ".gitrack").exists()

    def test_outside_git(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 2
        assert "Not inside a git repository" in result.output


class TestIssueCommands:
    def test_create_and_resolve(self, in_project: Path):
        display = create("Fix login", "--kind", "bug", "-l", "auth")
        code = display.split("-", 1)[1]

        result = runner.invoke(app, ["resolve", code[:3]])
        assert result.exit_code == 0, result.output
        internal_id = result.output.strip()
        assert internal_id.startswith("is-")

        issue = IssueStore(CommandContext.load(in_project).worktree).read(internal_id)
        assert issue.title == "Fix login"
        assert issue.labels == ["auth"]

    def test_resolve_debug_id(self, in_project: Path):
        display = create("Debuggable")
        result = runner.invoke(app, ["resolve", display, "--debug-id"])
        assert result.exit_code == 0, result.output
        assert re.search(rf"{display} \(is-[0-9a-z]{{26}}\)", result.output)

    def test_update(self, in_project: Path):
        display = create("Needs work")

        result = runner.invoke(
            app, ["update", display, "--status", "closed", "--reason", "done", "--add-label", "x"]
        )

        assert result.exit_code == 0, result.output
        assert "version 2" in result.output
        ctx = CommandContext.load(in_project)
        issue = IssueStore(ctx.worktree).read(ctx.id_mapper.resolve_to_internal_id(display))
        assert issue.status.value == "closed"
        assert issue.close_reason == "done"
        assert issue.closed_at is not None

    def test_delete(self, in_project: Path):
        display = create("Short lived")

        result = runner.invoke(app, ["delete", display])

        assert result.exit_code == 0, result.output
        assert f"Deleted {display}" in result.output
        # The retired code still resolves
        assert runner.invoke(app, ["resolve", display]).exit_code == 0

    def test_unknown_issue(self, in_project: Path):
        result = runner.invoke(app, ["resolve", "zzzz"])
        assert result.exit_code == 2
        assert "Issue not found: zzzz" in result.output

    def test_malformed_issue_file(self, in_project: Path):
        display = create("Soon broken")
        ctx = CommandContext.load(in_project)
        internal_id = ctx.id_mapper.resolve_to_internal_id(display)
        (ctx.worktree / "issues" / f"{internal_id}.md").write_text("---\ntitle: [\n---\n")

        result = runner.invoke(app, ["update", display, "--title", "Fixed"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Invalid front matter" in result.output

    def test_malformed_mapping_file(self, in_project: Path):
        create("Soon unmapped")
        ids_file = CommandContext.load(in_project).worktree / "mappings" / "ids.yml"
        ids_file.write_text("- a list\n")

        result = runner.invoke(app, ["resolve", "abcd"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "ids.yml must be a mapping" in result.output

    def test_attic_empty(self, in_project: Path):
        display = create("Calm")

        result = runner.invoke(app, ["attic", "list", display])
        assert result.exit_code == 0, result.output
        assert "No conflicts recorded" in result.output

        result = runner.invoke(app, ["attic", "restore", display])
        assert result.exit_code == 2
        assert "No conflicts recorded" in result.output

    def test_not_initialized(self, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        result = runner.invoke(app, ["create", "Nowhere to go"])
        assert result.exit_code == 2
        assert "gitrack init" in result.output


class TestDoctor:
    def test_healthy(self, in_project: Path):
        result = runner.invoke(app, ["doctor"])
        assert result.exit_code == 0, result.output
        assert "Sync worktree is healthy" in result.output
        assert "schema version 1" in result.output

    def test_missing_then_fixed(self, in_project: Path, run_git):
        run_git(in_project, "worktree", "remove", "--force", ".gitrack/data-sync-worktree")

        result = runner.invoke(app, ["doctor"])
        assert result.exit_code == 1
        assert "not found" in result.output

        result = runner.invoke(app, ["doctor", "--fix"])
        assert result.exit_code == 0, result.output
        assert runner.invoke(app, ["doctor"]).exit_code == 0

    def test_commands_report_missing_worktree(self, in_project: Path, run_git):
        run_git(in_project, "worktree", "remove", "--force", ".gitrack/data-sync-worktree")
        result = runner.invoke(app, ["create", "Lost"])
        assert result.exit_code != 0
        assert "gitrack doctor --fix" in result.output


class TestSync:
    def test_sync_without_remote_fails(self, in_project: Path):
        create("Local only")
        result = runner.invoke(app, ["sync", "--no-auto-save"])
        assert result.exit_code == 3
        assert "Sync failed" in result.output

    def test_sync_pushes(self, make_clone, init_gitrack, monkeypatch):
        clone = make_clone("solo")
        init_gitrack(clone)
        monkeypatch.chdir(clone)
        create("Shared")

        result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Synced and pushed" in result.output

        status = runner.invoke(app, ["sync", "status"])
        assert status.exit_code == 0, status.output
        assert "gitrack-sync" in status.output

    def test_sync_reports_renamed_codes(self, two_clones, monkeypatch):
        alice, bob = two_clones
        monkeypatch.setattr(codes, "code_digest", lambda ulid: "abcd234567" + "0" * 15)
        for root in (alice, bob):
            monkeypatch.chdir(root)
            assert create(f"From {root.name}") == "test-abcd"

        monkeypatch.chdir(alice)
        assert runner.invoke(app, ["sync"]).exit_code == 0
        monkeypatch.chdir(bob)
        result = runner.invoke(app, ["sync"])

        assert result.exit_code == 0, result.output
        assert "Short code abcd was taken on the remote; now test-abcd2" in result.output
