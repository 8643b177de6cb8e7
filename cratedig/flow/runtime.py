"""
Async message loop around the orchestrator.

User intents and operation results share one queue, so the orchestrator sees
them strictly one at a time. Each requested operation runs as its own task and
reports back exactly one result message.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol

from cratedig import logger
from cratedig.catalog.types import Artist, Release, ReleaseDetails, ReleaseGroup
from cratedig.exceptions import CratedigError
from cratedig.flow.events import (
    ArtistsResult,
    CloseFlow,
    DeleteSearch,
    Effect,
    EmitRecord,
    FetchReleaseDetails,
    FetchReleaseGroups,
    FetchReleases,
    Intent,
    Message,
    Operation,
    PollProgress,
    PollSearch,
    QueueTransfer,
    ReleaseDetailsResult,
    ReleaseGroupsResult,
    ReleasesResult,
    Result,
    SearchArtists,
    SearchFinished,
    SearchStarted,
    StartSourceSearch,
    TransferQueued,
)
from cratedig.flow.orchestrator import FlowSnapshot, Orchestrator
from cratedig.flow.records import QueuedRecord
from cratedig.source.poller import PollContinue, PollSettings, poll_tick
from cratedig.source.types import PeerFile, PeerResponse, SearchStatus


class CatalogBackend(Protocol):
    async def search_artists(self, query: str) -> list[Artist]: ...

    async def get_artist_release_groups(self, artist_id: str) -> list[ReleaseGroup]: ...

    async def get_release_group_releases(self, release_group_id: str) -> list[Release]: ...

    async def get_release(self, release_id: str) -> ReleaseDetails: ...


class SourceBackend(Protocol):
    async def start_search(self, query: str) -> str: ...

    async def get_search_status(self, search_id: str) -> SearchStatus: ...

    async def get_search_responses(self, search_id: str) -> list[PeerResponse]: ...

    async def queue_download(self, username: str, files: tuple[PeerFile, ...]) -> None: ...

    async def delete_search(self, search_id: str) -> None: ...


class OperationRunner:
    """Executes one operation against the clients and wraps the outcome as a result."""

    def __init__(self, catalog: CatalogBackend, source: SourceBackend, poll_settings: Optional[PollSettings] = None):
        self.catalog = catalog
        self.source = source
        self.poll_settings = poll_settings or PollSettings()

    async def run(self, op: Operation) -> Optional[Result]:
        if isinstance(op, DeleteSearch):
            await self._delete_search(op.search_id)
            return None
        try:
            return await self._dispatch(op)
        except CratedigError as exc:
            return failure_result(op, str(exc))

    async def _dispatch(self, op: Operation) -> Result:
        if isinstance(op, SearchArtists):
            return ArtistsResult(op.op_id, artists=await self.catalog.search_artists(op.query))
        if isinstance(op, FetchReleaseGroups):
            groups = await self.catalog.get_artist_release_groups(op.artist_id)
            return ReleaseGroupsResult(op.op_id, release_groups=groups)
        if isinstance(op, FetchReleases):
            releases = await self.catalog.get_release_group_releases(op.release_group_id)
            return ReleasesResult(op.op_id, releases=releases)
        if isinstance(op, FetchReleaseDetails):
            return ReleaseDetailsResult(op.op_id, details=await self.catalog.get_release(op.release_id))
        if isinstance(op, StartSourceSearch):
            return SearchStarted(op.op_id, search_id=await self.source.start_search(op.query))
        if isinstance(op, PollSearch):
            await asyncio.sleep(op.delay)
            outcome = await poll_tick(self.source, op.poll_state, self.poll_settings)
            if isinstance(outcome, PollContinue):
                return PollProgress(op.op_id, poll_state=outcome.state)
            return SearchFinished(op.op_id, responses=outcome.responses, timed_out=outcome.timed_out)
        if isinstance(op, QueueTransfer):
            await self.source.queue_download(op.username, op.files)
            return TransferQueued(op.op_id)
        raise TypeError(f"Unsupported operation: {type(op).__name__}")

    async def _delete_search(self, search_id: str) -> None:
        try:
            await self.source.delete_search(search_id)
        except CratedigError as exc:
            logger.get_logger().warning(f"Could not delete search {search_id}: {exc}")


def failure_result(op: Operation, message: str) -> Result:
    """The error-carrying result matching ``op``."""
    if isinstance(op, SearchArtists):
        return ArtistsResult(op.op_id, error=message)
    if isinstance(op, FetchReleaseGroups):
        return ReleaseGroupsResult(op.op_id, error=message)
    if isinstance(op, FetchReleases):
        return ReleasesResult(op.op_id, error=message)
    if isinstance(op, FetchReleaseDetails):
        return ReleaseDetailsResult(op.op_id, error=message)
    if isinstance(op, StartSourceSearch):
        return SearchStarted(op.op_id, error=message)
    if isinstance(op, PollSearch):
        return SearchFinished(op.op_id, error=message)
    if isinstance(op, QueueTransfer):
        return TransferQueued(op.op_id, error=message)
    raise TypeError(f"No result type for {type(op).__name__}")


class FlowRuntime:
    """Runs one acquisition flow until it is closed."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        runner: OperationRunner,
        on_change: Optional[Callable[[FlowSnapshot], None]] = None,
        on_record: Optional[Callable[[QueuedRecord], None]] = None,
    ):
        self.orchestrator = orchestrator
        self.runner = runner
        self.on_change = on_change
        self.on_record = on_record
        self._queue: asyncio.Queue[Message] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()

    def submit(self, intent: Intent) -> None:
        self._queue.put_nowait(intent)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        if self.on_change is not None:
            self.on_change(self.orchestrator.snapshot())
        try:
            while not self.orchestrator.session.closed:
                message = await self._queue.get()
                effects = self.orchestrator.handle(message)
                self._apply(effects)
                if self.on_change is not None:
                    self.on_change(self.orchestrator.snapshot())
        finally:
            await self._cancel_tasks()

    def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, CloseFlow):
                continue
            if isinstance(effect, EmitRecord):
                self._emit_record(effect.record)
                continue
            self._spawn(effect)

    def _emit_record(self, record: QueuedRecord) -> None:
        if self.on_record is None:
            return
        try:
            self.on_record(record)
        except Exception as exc:
            # The transfer is already queued; the flow keeps going without the record.
            logger.get_logger().error(
                f"Could not save queue record for {record.source_username}: {type(exc).__name__}: {exc}"
            )

    def _spawn(self, op: Operation) -> None:
        task = asyncio.create_task(self._execute(op))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, op: Operation) -> None:
        try:
            result = await self.runner.run(op)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Unexpected failure still has to unblock the loading phase.
            logger.get_logger().error(f"{type(op).__name__} failed: {exc}")
            if isinstance(op, DeleteSearch):
                return
            result = failure_result(op, str(exc) or type(exc).__name__)
        if result is not None:
            self._queue.put_nowait(result)

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
