"""
Sync branch protocol.

One ``sync()`` call reconciles the local sync branch with the remote:

    1. require a healthy worktree and a valid sync branch, record HEAD
    2. commit pending worktree edits
    3. fetch the remote branch (a missing remote branch means first push)
    4. fast-forward, or merge file by file against the merge base
    5. give unmapped issues a short code
    6. push; a non-fast-forward rejection goes back to step 3

A failure during fetch, merge or push rolls the sync branch back to the
commit recorded in step 1, leaving pending edits as uncommitted changes,
and is recorded in SyncState. The classifier decides the recovery advice;
permanent failures also copy the unpushed changes to the outbox.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from gitrack.core.config.models import GitrackConfig
from gitrack.core.git.backend import GitBackend, GitError
from gitrack.core.ids.mapper import MAPPING_FILE, IdMapper
from gitrack.core.ids.mapping import IdMapping, merge_mappings
from gitrack.core.issues.merge import merge_issues
from gitrack.core.issues.parser import parse_issue
from gitrack.core.issues.storage import ISSUES_DIR, IssueStore, internal_id_from_path
from gitrack.core.layout import outbox_path, state_file_path
from gitrack.core.outbox import Outbox
from gitrack.core.sync.attic import ATTIC_DIR, Attic, AtticEntry
from gitrack.core.sync.classifier import classify, error_text, is_non_fast_forward
from gitrack.core.sync.models import (
    Recovery,
    SyncConflict,
    SyncErrorKind,
    SyncFailure,
    SyncPhase,
    SyncResult,
)
from gitrack.core.sync.state import SyncStateStore
from gitrack.core.worktree.manager import SyncWorktreeManager

logger = logging.getLogger(__name__)

COMMIT_PENDING = "gitrack: save local changes"
COMMIT_RECONCILE = "gitrack: reconcile id mappings"
COMMIT_OUTBOX = "gitrack: import outbox"


class SyncProtocol:
    """
    Runs the fetch/merge/push cycle for the sync branch.

    Example:
        >>> protocol = SyncProtocol(project_root, backend, manager, config)
        >>> result = protocol.sync()
        >>> result.success
        True
    """

    def __init__(
        self,
        project_root: Path,
        backend: GitBackend,
        manager: SyncWorktreeManager,
        config: GitrackConfig,
    ) -> None:
        self.project_root = project_root
        self.backend = backend
        self.manager = manager
        self.config = config
        self.branch = config.sync.branch
        self.remote = config.sync.remote
        self.state_store = SyncStateStore(state_file_path(project_root), self.branch, self.remote)
        self.outbox = Outbox(outbox_path(project_root))
        self.phase = SyncPhase.IDLE

    @property
    def remote_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"

    def _enter(self, phase: SyncPhase) -> None:
        if phase is not self.phase:
            logger.info("Sync phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def _mapper(self, worktree: Path) -> IdMapper:
        return IdMapper.for_worktree(
            worktree,
            self.config.display.id_prefix,
            self.config.ids.min_code_length,
        )

    def sync(
        self,
        auto_save: bool | None = None,
        use_outbox: bool = True,
        force_save: bool = False,
    ) -> SyncResult:
        """
        Run one full sync.

        Args:
            auto_save: Save unpushed changes to the outbox on a permanent
                failure (defaults to ``sync.auto_save``)
            use_outbox: Import a non-empty outbox after a successful sync
            force_save: Save unpushed changes to the outbox whatever the
                failure kind

        Returns:
            SyncResult describing what happened; on failure it carries the
            error text, its classification and the recovery advice.

        Raises:
            WorktreeMissingError, WorktreeCorruptedError: If the worktree is unhealthy.
            SyncBranchInvalidError: If the sync branch layout is invalid.
            MappingFormatError, IssueParseError: If sync branch or outbox data
                is malformed; the branch is rolled back and the failure recorded.
        """
        if auto_save is None:
            auto_save = self.config.sync.auto_save

        worktree = self.manager.require_healthy()
        self.manager.check_sync_branch(worktree)

        self.phase = SyncPhase.IDLE
        result = SyncResult(success=False, started_at=datetime.now(timezone.utc))
        start_head = self.backend.rev_parse(worktree, "HEAD")
        local_commit = start_head

        try:
            committed = self.backend.commit_all(worktree, COMMIT_PENDING)
            if committed is not None:
                local_commit = committed
                result.committed_local = True
                logger.info("Committed pending changes as %s", committed[:8])
            self._run_cycle(worktree, result)
        except GitError as e:
            self._fail(worktree, result, e, start_head, local_commit, auto_save, force_save)
            return result
        except BaseException as e:
            self._abort(worktree, e, start_head, local_commit)
            raise

        if use_outbox and not self.outbox.is_empty():
            self._import_outbox(worktree, result)

        head = self.backend.rev_parse(worktree, "HEAD")
        state = self.state_store.load()
        state.mark_pushed(head or "", pushed=result.pushed)
        self.state_store.save(state)

        self._enter(SyncPhase.DONE)
        result.success = True
        result.phase = SyncPhase.DONE
        result.commit_sha = head
        result.completed_at = datetime.now(timezone.utc)
        logger.info("Sync complete in %.2fs: %s", result.duration_seconds or 0.0, result.summary())
        return result

    # ------------------------------------------------------------------
    # cycle
    # ------------------------------------------------------------------

    def _run_cycle(self, worktree: Path, result: SyncResult) -> None:
        max_attempts = self.config.sync.max_push_retries
        while True:
            self._enter(SyncPhase.FETCHING)
            fetched = self.backend.fetch(self.project_root, self.remote, self.branch)
            remote_head = self.backend.rev_parse(worktree, self.remote_ref) if fetched else None

            self._enter(SyncPhase.MERGING)
            local_head = self.backend.rev_parse(worktree, "HEAD")
            historical: IdMapping | None = None
            if remote_head is not None and local_head is not None and remote_head != local_head:
                historical = self._integrate(worktree, result, local_head, remote_head)

            self._reconcile(worktree, historical)

            head = self.backend.rev_parse(worktree, "HEAD")
            if head == remote_head:
                logger.info("Sync branch already matches %s", self.remote_ref)
                return

            self._enter(SyncPhase.PUSHING)
            result.push_attempts += 1
            try:
                self.backend.push(worktree, self.remote, self.branch)
            except GitError as e:
                if is_non_fast_forward(e) and result.push_attempts < max_attempts:
                    logger.warning(
                        "Push rejected (remote moved), retrying (%d/%d)",
                        result.push_attempts,
                        max_attempts,
                    )
                    continue
                raise
            result.pushed = True
            return

    def _integrate(
        self,
        worktree: Path,
        result: SyncResult,
        local_head: str,
        remote_head: str,
    ) -> IdMapping:
        """Bring remote commits into the local branch. Returns the remote mapping table."""
        remote_table = IdMapping.from_yaml(
            self.backend.show_file(worktree, remote_head, MAPPING_FILE)
        )

        if self.backend.is_ancestor(worktree, remote_head, local_head):
            logger.debug("Local branch is ahead of %s", self.remote_ref)
            return remote_table

        if self.backend.is_ancestor(worktree, local_head, remote_head):
            changed = self.backend.changed_paths(worktree, local_head, remote_head)
            self.backend.fast_forward(worktree, remote_head)
            result.fast_forwarded = True
            result.issues_updated += sum(1 for p in changed if internal_id_from_path(p))
            logger.info("Fast-forwarded to %s", remote_head[:8])
            return remote_table

        self._merge(worktree, result, local_head, remote_head, remote_table)
        return remote_table

    def _merge(
        self,
        worktree: Path,
        result: SyncResult,
        local_head: str,
        remote_head: str,
        remote_table: IdMapping,
    ) -> None:
        base = self.backend.merge_base(worktree, local_head, remote_head)
        local_changed = self.backend.changed_paths(worktree, base, local_head)
        remote_changed = self.backend.changed_paths(worktree, base, remote_head)
        logger.info(
            "Merging %s into %s (base %s): %d local, %d remote paths changed",
            remote_head[:8],
            local_head[:8],
            base[:8] if base else "none",
            len(local_changed),
            len(remote_changed),
        )

        attic = Attic(worktree)
        store = IssueStore(worktree)

        for path in sorted(remote_changed - {MAPPING_FILE}):
            remote_content = self.backend.show_file(worktree, remote_head, path)

            if path not in local_changed:
                self._take_remote(worktree, path, remote_content)
                if internal_id_from_path(path):
                    result.issues_updated += 1
                continue

            local_content = self.backend.show_file(worktree, local_head, path)
            if local_content == remote_content:
                continue

            if internal_id_from_path(path) is not None:
                if local_content is None:
                    # Deleted locally, modified remotely: the modification survives
                    self._take_remote(worktree, path, remote_content)
                    result.issues_updated += 1
                elif remote_content is not None:
                    base_content = (
                        self.backend.show_file(worktree, base, path) if base else None
                    )
                    self._merge_issue(
                        store, attic, result, base_content, local_content, remote_content
                    )
            elif path.startswith(f"{ATTIC_DIR}/"):
                if local_content is None:
                    self._take_remote(worktree, path, remote_content)
            elif remote_content is not None:
                attic.record_file(path, remote_content)

        local_table = IdMapping.from_yaml(self.backend.show_file(worktree, local_head, MAPPING_FILE))
        merged_table, renames = merge_mappings(
            local_table, remote_table, self.config.ids.min_code_length
        )
        merged_table.save(worktree / MAPPING_FILE)
        result.renames.update({r.old_code: r.new_code for r in renames})

        mapper = self._mapper(worktree)
        mapper.reconcile(store.ids(), historical=remote_table)
        mapper.flush()

        sha = self.backend.commit_merge(
            worktree,
            f"gitrack: merge {self.remote_ref}",
            [local_head, remote_head],
        )
        result.merged = True
        logger.info("Created merge commit %s", sha[:8])

    def _merge_issue(
        self,
        store: IssueStore,
        attic: Attic,
        result: SyncResult,
        base_content: str | None,
        local_content: str,
        remote_content: str,
    ) -> None:
        base = parse_issue(base_content) if base_content is not None else None
        local = parse_issue(local_content)
        remote = parse_issue(remote_content)

        merged = merge_issues(base, local, remote)
        store.write(merged.merged)
        result.issues_updated += 1

        if merged.has_conflicts:
            self._enter(SyncPhase.CONFLICT)
            attic_path = attic.record(AtticEntry.from_merge(merged))
            result.conflicts.append(
                SyncConflict(
                    issue_id=merged.merged.id,
                    fields=[c.field for c in merged.conflicts],
                    winner_source=merged.winner_source,
                    attic_path=attic_path,
                )
            )
            self._enter(SyncPhase.MERGING)

    def _take_remote(self, worktree: Path, path: str, content: str | None) -> None:
        target = worktree / path
        if content is None:
            if target.exists():
                target.unlink()
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    def _reconcile(self, worktree: Path, historical: IdMapping | None) -> None:
        mapper = self._mapper(worktree)
        added = mapper.reconcile(IssueStore(worktree).ids(), historical=historical)
        if mapper.flush():
            self.backend.commit_all(worktree, COMMIT_RECONCILE)
            logger.info("Added mapping entries for %d issue(s)", len(added))

    # ------------------------------------------------------------------
    # outbox
    # ------------------------------------------------------------------

    def _import_outbox(self, worktree: Path, result: SyncResult) -> None:
        """Merge the outbox in a second cycle; keep it if that cycle fails."""
        before = self.backend.rev_parse(worktree, "HEAD")
        try:
            imported = self.outbox.import_into(
                worktree, self._mapper(worktree), self.config.ids.min_code_length
            )
            if self.backend.commit_all(worktree, COMMIT_OUTBOX) is not None:
                self._run_cycle(worktree, result)
        except GitError as e:
            logger.warning("Outbox import could not be pushed, keeping outbox: %s", e)
            if before is not None:
                self.backend.reset(worktree, before, "hard")
                self.backend.clean(worktree)
            result.message = f"outbox kept at {self.outbox.path} ({error_text(e).splitlines()[0]})"
            return
        except BaseException as e:
            self._abort(worktree, e, before, before)
            raise

        self.outbox.clear()
        result.outbox_imported = imported.imported
        result.renames.update(imported.renames)

    # ------------------------------------------------------------------
    # failure handling
    # ------------------------------------------------------------------

    def _fail(
        self,
        worktree: Path,
        result: SyncResult,
        error: GitError,
        start_head: str | None,
        local_commit: str | None,
        auto_save: bool,
        force_save: bool = False,
    ) -> None:
        failed_phase = self.phase
        kind = classify(error)
        text = error_text(error)
        logger.error("Sync failed during %s (%s): %s", failed_phase.value, kind.value, text)

        unpushed_commits = 0
        saved_to: str | None = None
        if local_commit is not None:
            remote_head = self.backend.rev_parse(worktree, self.remote_ref)
            unpushed_commits = self.backend.count_commits(worktree, remote_head, local_commit)
            wants_save = force_save or (kind is SyncErrorKind.PERMANENT and auto_save)
            if wants_save and unpushed_commits:
                saved_to = self._save_to_outbox(worktree, remote_head, local_commit)

        self._rollback(worktree, start_head, local_commit)
        self._enter(SyncPhase.FAILED)

        state = self.state_store.load()
        state.mark_failed(
            SyncFailure(
                phase=failed_phase,
                kind=kind,
                message=text,
                unpushed_commits=unpushed_commits,
                outbox_path=saved_to,
            )
        )
        self.state_store.save(state)

        result.success = False
        result.phase = failed_phase
        result.error = text
        result.error_kind = kind
        result.recovery = Recovery.for_kind(kind)
        result.outbox_path = saved_to
        result.commit_sha = start_head
        result.completed_at = datetime.now(timezone.utc)

    def _abort(
        self,
        worktree: Path,
        error: BaseException,
        start_head: str | None,
        local_commit: str | None,
    ) -> None:
        """Roll back after an error that is not a git failure and record it."""
        failed_phase = self.phase
        message = str(error) or type(error).__name__
        logger.error("Sync aborted during %s: %s", failed_phase.value, message)

        self._rollback(worktree, start_head, local_commit)
        self._enter(SyncPhase.FAILED)

        state = self.state_store.load()
        state.mark_failed(
            SyncFailure(phase=failed_phase, kind=SyncErrorKind.UNKNOWN, message=message)
        )
        self.state_store.save(state)

    def _save_to_outbox(self, worktree: Path, remote_head: str | None, local_commit: str) -> str:
        base = (
            self.backend.merge_base(worktree, remote_head, local_commit) if remote_head else None
        )
        contents: dict[str, str] = {}
        for path in sorted(self.backend.changed_paths(worktree, base, local_commit)):
            if not (path.startswith(f"{ISSUES_DIR}/") or path == MAPPING_FILE):
                continue
            content = self.backend.show_file(worktree, local_commit, path)
            if content is not None:
                contents[path] = content
        return str(self.outbox.save(contents))

    def _rollback(self, worktree: Path, start_head: str | None, local_commit: str | None) -> None:
        """Return the branch to ``start_head`` with pending edits left uncommitted."""
        if start_head is None or local_commit is None:
            return
        self.backend.reset(worktree, local_commit, "hard")
        self.backend.clean(worktree)
        if local_commit != start_head:
            self.backend.reset(worktree, start_head, "mixed")
        logger.info("Rolled sync branch back to %s", start_head[:8])
