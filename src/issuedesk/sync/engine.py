"""Sync Engine - replays the local queue against GitHub and mirrors remote state.

Drain order is the queue's created_at order. An entity whose entry fails,
is not yet due, or is in conflict blocks its later entries for the rest
of the drain so operations on one entity never reorder.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import TypeVar, assert_never

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.config import RetryConfig, SyncConfig
from issuedesk.db.models import (
    EntityType,
    Issue,
    IssueState,
    Label,
    QueueOperation,
    SyncQueueEntry,
    SyncStatus,
    utcnow,
)
from issuedesk.db.repositories import (
    IssueConflictRepository,
    IssueRepository,
    LabelRepository,
    SyncQueueRepository,
    SyncRunRepository,
)
from issuedesk.github import (
    GitHubClient,
    GitHubClientError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRetryableError,
    retry_with_config,
)
from issuedesk.github.retry import SleepFunc
from issuedesk.logging import bind_entity, bind_repo, get_logger
from issuedesk.schemas import GitHubIssue, GitHubLabel

from . import results
from .checksum import body_checksum
from .conflicts import ConflictData, MergedIssue, Resolution
from .exceptions import (
    ConflictNotFoundError,
    EntityNotFoundError,
    InvalidResolutionError,
    SyncError,
    SyncInProgressError,
)
from .payloads import (
    IssueCreatePayload,
    IssueDeletePayload,
    IssueUpdatePayload,
    LabelCreatePayload,
    LabelDeletePayload,
    LabelUpdatePayload,
    QueuePayload,
    dump_payload,
    parse_payload,
)
from .results import DrainResult, EntryOutcome, OutcomeAction, PullResult

logger = get_logger(__name__)

T = TypeVar("T")

Action = OutcomeAction


def _is_transient(error: BaseException) -> bool:
    # Rate limits are deferred through retry_after instead of slept on
    return isinstance(error, GitHubRetryableError) and not isinstance(
        error, GitHubRateLimitError
    )


class SyncEngine:
    """Drains the sync queue and pulls remote issues and labels.

    Usage:
        async with GitHubClient(tracker=RateLimitTracker()) as client:
            async with get_session() as session:
                engine = SyncEngine(session, client, "owner", "repo")
                drained = await engine.drain()
                pulled = await engine.pull()

    Each processed queue entry is committed on its own, so a crash loses at
    most the entry in flight. Only one drain, pull or resolution runs at a
    time per engine.
    """

    def __init__(
        self,
        session: AsyncSession,
        client: GitHubClient | None,
        owner: str,
        repo: str,
        *,
        config: SyncConfig | None = None,
        retry_config: RetryConfig | None = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._client = client
        self._owner = owner
        self._repo = repo
        self._config = config or SyncConfig()
        self._retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()

        self._issues = IssueRepository(session)
        self._labels = LabelRepository(session)
        self._queue = SyncQueueRepository(session)
        self._conflicts = IssueConflictRepository(session)
        self._runs = SyncRunRepository(session)
        self._log = bind_repo(owner, repo)

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    @property
    def client(self) -> GitHubClient:
        """GitHub client for drain and pull.

        Raises:
            SyncError: If the engine was built without one (offline use)
        """
        if self._client is None:
            raise SyncError("No GitHub client configured")
        return self._client

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise SyncInProgressError("A sync is already running")
        async with self._lock:
            yield

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry_with_config(
            operation,
            self._retry_config,
            is_retryable=_is_transient,
            sleep=self._sleep,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    async def drain(self) -> DrainResult:
        """Replay due queue entries against GitHub.

        Raises:
            SyncInProgressError: If another operation holds the engine
        """
        async with self._exclusive():
            return await self._run_drain()

    async def pull(self) -> PullResult:
        """Mirror remote labels and issues into the local store.

        Rows with pending changes or conflicts are left untouched.

        Raises:
            SyncInProgressError: If another operation holds the engine
        """
        async with self._exclusive():
            return await self._run_pull()

    async def sync(self) -> tuple[DrainResult, PullResult]:
        """Drain, then pull."""
        async with self._exclusive():
            drained = await self._run_drain()
            pulled = await self._run_pull()
            return drained, pulled

    async def status(self) -> results.SyncStatus:
        """Summarize queue, conflicts and the last completed cycle."""
        stats = await self._queue.get_stats()
        conflicted = await self._issues.get_conflicted()
        latest = await self._runs.get_latest()
        last_ok = await self._runs.get_latest(successful_only=True)

        state: results.SyncState
        if self.is_syncing:
            state = "syncing"
        elif conflicted:
            state = "conflict"
        elif latest is not None and latest.error:
            state = "error"
        else:
            state = "idle"

        return results.SyncStatus(
            state=state,
            last_sync_at=last_ok.finished_at if last_ok else None,
            pending=stats["total"],
            failing=stats["failing"],
            conflicts=[
                results.ConflictSummary(
                    issue_id=issue.id,
                    issue_number=issue.number,
                    issue_title=issue.title,
                )
                for issue in conflicted
            ],
            error=latest.error if latest else None,
        )

    async def list_conflicts(self) -> list[ConflictData]:
        """Local and remote versions of every conflicted issue."""
        issues = await self._issues.get_conflicted()
        return [ConflictData.from_issue(issue) for issue in issues if issue.conflict is not None]

    async def resolve_conflict(
        self,
        issue_id: str,
        resolution: Resolution | str,
        merged: MergedIssue | None = None,
    ) -> Issue:
        """Settle a conflicted issue.

        - local: keep local content and push it over the remote version
        - remote: discard local pending changes and adopt the remote version
        - merged: apply ``merged`` and push it as a fresh local update

        Raises:
            EntityNotFoundError: If the issue does not exist
            ConflictNotFoundError: If the issue is not in conflict
            InvalidResolutionError: If ``merged`` is missing for a merged resolution
        """
        resolution = Resolution(resolution)
        if resolution == Resolution.MERGED and merged is None:
            raise InvalidResolutionError("A merged resolution needs the merged content")

        async with self._exclusive():
            issue = await self._issues.get_by_id(issue_id)
            if issue is None:
                raise EntityNotFoundError("issue", issue_id)
            conflict = issue.conflict
            if issue.sync_status != SyncStatus.CONFLICT or conflict is None:
                raise ConflictNotFoundError(f"Issue {issue_id} has no unresolved conflict")

            await self._queue.remove_for_entity(EntityType.ISSUE, issue.id)
            issue.remote_updated_at = conflict.remote_updated_at
            issue.local_updated_at = self._clock()

            if resolution == Resolution.REMOTE:
                issue.title = conflict.remote_title
                issue.body = conflict.remote_body
                issue.state = conflict.remote_state
                issue.labels = await self._labels_by_remote_names(conflict.remote_labels)
                issue.body_checksum = body_checksum(issue.body)
                issue.sync_status = SyncStatus.SYNCED
            else:
                if resolution == Resolution.MERGED:
                    assert merged is not None
                    issue.title = merged.title
                    issue.body = merged.body
                    if merged.labels is not None:
                        issue.labels = await self._labels.get_by_names(merged.labels)
                # The remote version becomes the baseline the push overwrites
                issue.body_checksum = body_checksum(conflict.remote_body)
                issue.sync_status = SyncStatus.PENDING_UPDATE
                self._queue.enqueue(
                    EntityType.ISSUE,
                    issue.id,
                    QueueOperation.UPDATE,
                    dump_payload(
                        IssueUpdatePayload(
                            title=issue.title,
                            body=issue.body or "",
                            state=issue.state.value,
                            labels=issue.label_names,
                        )
                    ),
                    created_at=self._clock(),
                )

            await self._conflicts.clear(issue)
            await self._labels.recompute_issue_counts()
            await self._session.commit()

        bind_entity("issue", issue.id, resolution=resolution.value).info(
            "Resolved conflict on issue #{} with {}", issue.number, resolution.value
        )
        return issue

    # -------------------------------------------------------------------------
    # Drain
    # -------------------------------------------------------------------------
    async def _record_failed_run(self, run_id: int, error: Exception) -> None:
        await self._session.rollback()
        run = await self._runs.get_by_id(run_id)
        if run is not None:
            await self._runs.finish(run, error=str(error))
            await self._session.commit()

    async def _run_drain(self) -> DrainResult:
        run = await self._runs.start("drain")
        await self._session.commit()
        try:
            result = await self._drain_entries()
        except Exception as e:
            await self._record_failed_run(run.id, e)
            raise

        await self._runs.finish(
            run,
            pushed=result.pushed,
            failed=result.failed,
            conflicts=result.conflicts,
        )
        await self._session.commit()
        self._log.info(
            "Drain finished: {} pushed, {} failed, {} conflicts, {} skipped",
            result.pushed,
            result.failed,
            result.conflicts,
            result.skipped,
        )
        return result

    async def _drain_entries(self) -> DrainResult:
        result = DrainResult()
        now = self._clock()
        blocked: set[tuple[EntityType, str]] = set()
        recount_labels = False
        tracker = self.client.tracker

        for entry in await self._queue.list_entries():
            key = (entry.entity_type, entry.entity_id)
            if key in blocked or (entry.retry_after is not None and entry.retry_after > now):
                blocked.add(key)
                result.record(self._outcome(entry, "skipped"))
                continue
            if result.total_attempted >= self._config.drain_batch_size:
                break
            if tracker is not None and not tracker.can_make_request():
                self._log.warning(
                    "GitHub quota exhausted, stopping drain ({}s until reset)",
                    round(tracker.get_time_until_reset()),
                )
                result.stopped_by_rate_limit = True
                break

            outcome = await self._replay(entry)
            result.record(outcome)
            if outcome.action not in ("pushed", "dropped"):
                blocked.add(key)
            if outcome.action == "pushed":
                recount_labels = True
            await self._session.commit()

        if recount_labels:
            await self._labels.recompute_issue_counts()
            await self._session.commit()
        return result

    @staticmethod
    def _outcome(
        entry: SyncQueueEntry,
        action: Action,
        kind: str | None = None,
        error: str | None = None,
    ) -> EntryOutcome:
        return EntryOutcome(
            entry_id=entry.id,
            kind=kind or f"{entry.entity_type.value}.{entry.operation.value}",
            entity_id=entry.entity_id,
            action=action,
            error=error,
        )

    async def _replay(self, entry: SyncQueueEntry) -> EntryOutcome:
        log = bind_entity(entry.entity_type.value, entry.entity_id, entry_id=entry.id)
        try:
            payload = parse_payload(entry.payload)
        except ValidationError as e:
            await self._fail(entry, f"Unreadable payload: {e}")
            log.error("Queue entry {} has an unreadable payload", entry.id)
            return self._outcome(entry, "failed", error=entry.error)

        try:
            action = await self._dispatch(entry, payload)
        except GitHubClientError as e:
            retry_after = await self._fail(entry, str(e), error=e)
            log.warning(
                "Replay of {} failed (attempt {}), next try after {}: {}",
                payload.kind,
                entry.attempts,
                retry_after.isoformat(),
                e,
            )
            return self._outcome(entry, "failed", payload.kind, str(e))

        if action == "pushed":
            log.info("Replayed {}", payload.kind)
        return self._outcome(entry, action, payload.kind)

    async def _fail(
        self,
        entry: SyncQueueEntry,
        message: str,
        error: GitHubClientError | None = None,
    ) -> datetime:
        now = self._clock()
        retry_after = now + self._config.backoff_for(entry.attempts + 1)
        if isinstance(error, GitHubRateLimitError):
            if error.retry_after is not None:
                retry_after = now + timedelta(seconds=error.retry_after)
            elif error.reset_at is not None:
                retry_after = max(error.reset_at, now)
        await self._queue.set_retry_after(entry, retry_after, message)
        return retry_after

    async def _dispatch(self, entry: SyncQueueEntry, payload: QueuePayload) -> Action:
        if isinstance(payload, IssueCreatePayload | IssueUpdatePayload | IssueDeletePayload):
            issue = await self._issues.get_by_id(entry.entity_id)
            if issue is None:
                await self._queue.remove(entry)
                return "dropped"
            if issue.sync_status == SyncStatus.CONFLICT:
                return "skipped"
            if isinstance(payload, IssueCreatePayload):
                return await self._push_issue_create(entry, issue, payload)
            if isinstance(payload, IssueUpdatePayload):
                return await self._push_issue_update(entry, issue, payload)
            return await self._push_issue_delete(entry, issue, payload)

        label = await self._labels.get_by_id(entry.entity_id)
        if label is None:
            await self._queue.remove(entry)
            return "dropped"
        if isinstance(payload, LabelCreatePayload):
            return await self._push_label_create(entry, label, payload)
        if isinstance(payload, LabelUpdatePayload):
            return await self._push_label_update(entry, label, payload)
        if isinstance(payload, LabelDeletePayload):
            return await self._push_label_delete(entry, label, payload)
        assert_never(payload)

    # -------------------------------------------------------------------------
    # Issue replay
    # -------------------------------------------------------------------------
    @staticmethod
    def _adopt_baseline(issue: Issue, remote: GitHubIssue) -> None:
        issue.remote_updated_at = remote.updated_at
        issue.body_checksum = body_checksum(remote.body)

    @staticmethod
    def _diverged(issue: Issue, remote: GitHubIssue) -> bool:
        """Remote changed since the last sync while the local body changed too."""
        if issue.remote_updated_at is None:
            return False
        return (
            remote.updated_at > issue.remote_updated_at
            and body_checksum(issue.body) != issue.body_checksum
        )

    async def _settle_issue(
        self,
        entry: SyncQueueEntry,
        issue: Issue,
        remote: GitHubIssue | None = None,
    ) -> None:
        """Dequeue ``entry`` and mark the issue synced if nothing else is queued.

        A synced row mirrors ``remote``, the issue as GitHub returned it, so
        remote edits to fields the push did not touch are not lost.
        """
        await self._queue.remove(entry)
        if await self._queue.get_for_entity(EntityType.ISSUE, issue.id):
            if issue.sync_status == SyncStatus.PENDING_CREATE:
                issue.sync_status = SyncStatus.PENDING_UPDATE
            return
        if remote is not None:
            await self._mirror_remote(issue, remote)
        issue.sync_status = SyncStatus.SYNCED
        issue.body_checksum = body_checksum(issue.body)

    async def _mirror_remote(self, issue: Issue, remote: GitHubIssue) -> None:
        issue.title = remote.title
        issue.body = remote.body
        issue.state = IssueState(remote.state)
        issue.github_url = remote.html_url or issue.github_url
        names = set(remote.label_names)
        labels = await self._labels_by_remote_names(remote.label_names)
        # Unknown remote labels arrive with the next label pull
        if len(labels) == len(names):
            issue.labels = labels

    async def _push_issue_create(
        self,
        entry: SyncQueueEntry,
        issue: Issue,
        payload: IssueCreatePayload,
    ) -> Action:
        if issue.is_pushed:
            await self._settle_issue(entry, issue)
            return "pushed"

        remote = await self._call(
            lambda: self.client.create_issue(
                self._owner,
                self._repo,
                title=payload.title,
                body=payload.body,
                labels=payload.labels,
            )
        )
        issue.number = remote.number
        issue.github_url = remote.html_url
        self._adopt_baseline(issue, remote)
        await self._settle_issue(entry, issue, remote)
        return "pushed"

    async def _push_issue_update(
        self,
        entry: SyncQueueEntry,
        issue: Issue,
        payload: IssueUpdatePayload,
    ) -> Action:
        if issue.number is None:
            return "skipped"
        number = issue.number

        remote = await self._call(lambda: self.client.get_issue(self._owner, self._repo, number))
        if self._diverged(issue, remote):
            await self._conflicts.record(
                issue,
                title=remote.title,
                body=remote.body,
                state=IssueState(remote.state),
                labels=remote.label_names,
                updated_at=remote.updated_at,
                detected_at=self._clock(),
            )
            issue.sync_status = SyncStatus.CONFLICT
            bind_entity("issue", issue.id).warning(
                "Issue #{} changed on GitHub since the last sync; marked as conflict", number
            )
            return "conflict"

        updated = await self._call(
            lambda: self.client.update_issue(
                self._owner,
                self._repo,
                number,
                title=payload.title,
                body=payload.body,
                state=payload.state,
                labels=payload.labels,
            )
        )
        self._adopt_baseline(issue, updated)
        await self._settle_issue(entry, issue, updated)
        return "pushed"

    async def _push_issue_delete(
        self,
        entry: SyncQueueEntry,
        issue: Issue,
        payload: IssueDeletePayload,
    ) -> Action:
        # The REST API cannot delete issues; closing is the remote delete
        try:
            await self._call(
                lambda: self.client.close_issue(self._owner, self._repo, payload.number)
            )
        except GitHubNotFoundError:
            bind_entity("issue", issue.id).info("Issue #{} already gone on GitHub", payload.number)

        await self._queue.remove_for_entity(EntityType.ISSUE, issue.id)
        await self._issues.delete(issue)
        await self._issues.flush()
        return "pushed"

    # -------------------------------------------------------------------------
    # Label replay
    # -------------------------------------------------------------------------
    async def _settle_label(self, entry: SyncQueueEntry, label: Label) -> None:
        await self._queue.remove(entry)
        if await self._queue.get_for_entity(EntityType.LABEL, label.id):
            if label.sync_status == SyncStatus.PENDING_CREATE:
                label.sync_status = SyncStatus.PENDING_UPDATE
            return
        label.sync_status = SyncStatus.SYNCED

    async def _push_label_create(
        self,
        entry: SyncQueueEntry,
        label: Label,
        payload: LabelCreatePayload,
    ) -> Action:
        if label.is_pushed:
            await self._settle_label(entry, label)
            return "pushed"

        remote = await self._call(
            lambda: self.client.create_label(
                self._owner,
                self._repo,
                name=payload.name,
                color=payload.color,
                description=payload.description,
            )
        )
        label.remote_name = remote.name
        await self._settle_label(entry, label)
        return "pushed"

    async def _push_label_update(
        self,
        entry: SyncQueueEntry,
        label: Label,
        payload: LabelUpdatePayload,
    ) -> Action:
        if label.remote_name is None:
            return "skipped"
        remote_name = label.remote_name

        remote = await self._call(
            lambda: self.client.update_label(
                self._owner,
                self._repo,
                remote_name,
                new_name=payload.name,
                color=payload.color,
                description=payload.description,
            )
        )
        label.remote_name = remote.name
        await self._settle_label(entry, label)
        return "pushed"

    async def _push_label_delete(
        self,
        entry: SyncQueueEntry,
        label: Label,
        payload: LabelDeletePayload,
    ) -> Action:
        try:
            await self._call(
                lambda: self.client.delete_label(self._owner, self._repo, payload.name)
            )
        except GitHubNotFoundError:
            bind_entity("label", label.id).info("Label '{}' already gone on GitHub", payload.name)

        await self._queue.remove_for_entity(EntityType.LABEL, label.id)
        await self._labels.delete_label(label)
        await self._labels.flush()
        return "pushed"

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------
    async def _labels_by_remote_names(self, names: list[str]) -> list[Label]:
        wanted = set(names)
        return [
            label
            for label in await self._labels.list_labels()
            if label.remote_name is not None and label.remote_name in wanted
        ]

    async def _run_pull(self) -> PullResult:
        previous = await self._runs.get_latest("pull", successful_only=True)
        since = previous.started_at if previous is not None else None

        run = await self._runs.start("pull")
        await self._session.commit()
        try:
            result = PullResult()
            remote_labels = await self._call(
                lambda: self.client.list_labels(self._owner, self._repo)
            )
            await self._pull_labels(remote_labels, result)
            remote_issues = await self._call(
                lambda: self.client.list_issues(self._owner, self._repo, state="all", since=since)
            )
            await self._pull_issues(remote_issues, result)
            await self._labels.recompute_issue_counts()
        except Exception as e:
            await self._record_failed_run(run.id, e)
            raise

        await self._runs.finish(run, pulled=result.total_pulled)
        await self._session.commit()
        self._log.info(
            "Pull finished: {} issues created, {} updated, {} skipped; labels {}/{}/{}",
            result.issues_created,
            result.issues_updated,
            result.issues_skipped,
            result.labels_created,
            result.labels_updated,
            result.labels_deleted,
        )
        return result

    async def _pull_labels(self, remote_labels: list[GitHubLabel], result: PullResult) -> None:
        local = await self._labels.list_labels()
        by_remote_name = {label.remote_name: label for label in local if label.remote_name}
        by_name = {label.name: label for label in local}
        seen: set[str] = set()

        for remote in remote_labels:
            seen.add(remote.name)
            color = remote.color.lower()
            label = by_remote_name.get(remote.name)

            if label is None:
                unpushed = by_name.get(remote.name)
                if unpushed is not None:
                    # Same name created locally; its queued create now dequeues as a no-op
                    unpushed.remote_name = remote.name
                    result.labels_updated += 1
                    continue
                self._labels.add(
                    Label(
                        name=remote.name,
                        color=color,
                        description=remote.description,
                        issue_count=0,
                        sync_status=SyncStatus.SYNCED,
                        remote_name=remote.name,
                        local_updated_at=self._clock(),
                        created_at=self._clock(),
                    )
                )
                result.labels_created += 1
                continue

            if label.sync_status != SyncStatus.SYNCED:
                continue
            if (label.name, label.color, label.description) != (
                remote.name,
                color,
                remote.description,
            ):
                label.name = remote.name
                label.color = color
                label.description = remote.description
                result.labels_updated += 1

        for label in local:
            if (
                label.remote_name is not None
                and label.remote_name not in seen
                and label.sync_status == SyncStatus.SYNCED
            ):
                await self._labels.delete_label(label)
                result.labels_deleted += 1

        await self._labels.flush()

    async def _pull_issues(self, remote_issues: list[GitHubIssue], result: PullResult) -> None:
        existing = await self._issues.get_by_numbers([remote.number for remote in remote_issues])
        labels = {
            label.remote_name: label
            for label in await self._labels.list_labels()
            if label.remote_name is not None
        }

        for remote in remote_issues:
            remote_labels = [labels[name] for name in remote.label_names if name in labels]
            issue = existing.get(remote.number)

            if issue is None:
                self._issues.add(
                    Issue(
                        number=remote.number,
                        title=remote.title,
                        body=remote.body,
                        state=IssueState(remote.state),
                        github_url=remote.html_url,
                        labels=remote_labels,
                        sync_status=SyncStatus.SYNCED,
                        local_updated_at=remote.updated_at,
                        remote_updated_at=remote.updated_at,
                        body_checksum=body_checksum(remote.body),
                        created_at=remote.created_at,
                    )
                )
                result.issues_created += 1
                continue

            if issue.sync_status != SyncStatus.SYNCED:
                result.issues_skipped += 1
                continue
            if issue.remote_updated_at is not None and remote.updated_at <= issue.remote_updated_at:
                continue

            issue.title = remote.title
            issue.body = remote.body
            issue.state = IssueState(remote.state)
            issue.github_url = remote.html_url
            issue.labels = remote_labels
            issue.local_updated_at = remote.updated_at
            self._adopt_baseline(issue, remote)
            result.issues_updated += 1

        await self._issues.flush()
