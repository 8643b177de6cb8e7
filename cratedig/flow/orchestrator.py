"""
Acquisition flow state machine.

``Orchestrator.handle`` takes one message (a user ``Intent`` or an operation
result), updates the session and returns the effects the runtime should carry
out. It performs no I/O and never raises for upstream failures; those arrive
as results with ``error`` set.

Each issued operation gets a fresh ticket. A result is applied only when it
carries the pending ticket and the flow is still in the phase the operation
was issued from; anything else is stale and dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from cratedig import logger
from cratedig.catalog.releases import first_release_with_track_count
from cratedig.catalog.types import Artist, Release, ReleaseDetails, ReleaseGroup
from cratedig.flow.events import (
    NAVIGATION_INTENTS,
    ArtistsResult,
    CloseFlow,
    DeleteSearch,
    Effect,
    EmitRecord,
    FetchReleaseDetails,
    FetchReleaseGroups,
    FetchReleases,
    Intent,
    IntentKind,
    Message,
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
from cratedig.flow.phases import Phase
from cratedig.flow.records import FileEntry, QueuedRecord
from cratedig.flow.session import FilterConfig, Session
from cratedig.source.poller import PollSettings, PollState, poll_status_line
from cratedig.source.scoring import CandidateSource, FilterStats

TRANSFER_COMPLETE_STATUS = "Download queued successfully! Press Enter or Esc to close."

IntentHandler = Callable[["Orchestrator", Intent], list]


@dataclass(frozen=True)
class FlowSnapshot:
    """Read-only view handed to whatever renders the flow."""
    phase: Phase
    query: str
    selected_artist: Optional[Artist]
    selected_release_group: Optional[ReleaseGroup]
    selected_release: Optional[Release]
    selected_release_details: Optional[ReleaseDetails]
    items: tuple
    cursor: int
    filters: FilterConfig
    filter_stats: FilterStats
    expected_tracks: int
    status: str
    error: str
    poll_state: Optional[PollState]
    transfer_complete: bool
    closed: bool

    @property
    def current_item(self) -> Union[Artist, ReleaseGroup, Release, CandidateSource, None]:
        if 0 <= self.cursor < len(self.items):
            return self.items[self.cursor]
        return None


@dataclass(frozen=True)
class _Pending:
    op_id: int
    phase: Phase


class Orchestrator:
    """Owns the session; the only place it is mutated."""

    def __init__(
        self,
        filters: Optional[FilterConfig] = None,
        poll_settings: Optional[PollSettings] = None,
        delete_searches: bool = False,
    ):
        self.session = Session(filters=filters or FilterConfig())
        self.poll_settings = poll_settings or PollSettings()
        self.delete_searches = delete_searches
        self._last_op_id = 0
        self._pending: Optional[_Pending] = None

    # Entry points

    def handle(self, message: Message) -> list[Effect]:
        if self.session.closed:
            return []
        if isinstance(message, Intent):
            return self._handle_intent(message)
        return self._handle_result(message)

    def snapshot(self) -> FlowSnapshot:
        s = self.session
        return FlowSnapshot(
            phase=s.phase,
            query=s.query,
            selected_artist=s.selected_artist,
            selected_release_group=s.selected_release_group,
            selected_release=s.selected_release,
            selected_release_details=s.selected_release_details,
            items=tuple(s.current_list()),
            cursor=s.current_cursor(),
            filters=FilterConfig(**vars(s.filters)),
            filter_stats=s.filter_stats,
            expected_tracks=s.expected_tracks,
            status=s.status,
            error=s.error,
            poll_state=s.poll_state,
            transfer_complete=s.transfer_complete,
            closed=s.closed,
        )

    @property
    def pending_op_id(self) -> Optional[int]:
        return self._pending.op_id if self._pending else None

    # Intents

    def _handle_intent(self, intent: Intent) -> list[Effect]:
        if intent.kind is IntentKind.CANCEL:
            return self._close()
        if self.session.transfer_complete and intent.kind is IntentKind.CONFIRM:
            return self._close()
        if intent.kind in NAVIGATION_INTENTS:
            if self.session.phase.can_navigate:
                self._navigate(intent.kind)
            return []
        handler = _INTENT_TABLE.get((self.session.phase, intent.kind))
        if handler is None:
            return []
        return handler(self, intent)

    def _close(self) -> list[Effect]:
        self._pending = None
        self.session.reset()
        self.session.closed = True
        return [CloseFlow()]

    def _navigate(self, kind: IntentKind) -> None:
        s = self.session
        cursor = s.current_cursor()
        if kind is IntentKind.UP:
            cursor -= 1
        elif kind is IntentKind.DOWN:
            cursor += 1
        elif kind is IntentKind.HOME:
            cursor = 0
        elif kind is IntentKind.END:
            cursor = len(s.current_list()) - 1
        s.set_current_cursor(cursor)

    def _submit_query(self, intent: Intent) -> list[Effect]:
        query = intent.text.strip()
        if not query:
            return []
        s = self.session
        s.query = query
        s.transfer_complete = False
        self._enter(Phase.ARTIST_SEARCHING, status="Searching artists...")
        return [SearchArtists(self._ticket(), query)]

    def _select_artist(self, intent: Intent) -> list[Effect]:
        artist = self.session.current_item()
        if artist is None:
            return []
        self.session.selected_artist = artist
        self._enter(Phase.RELEASE_GROUP_LOADING, status="Loading releases...")
        return [FetchReleaseGroups(self._ticket(), artist.id)]

    def _select_release_group(self, intent: Intent) -> list[Effect]:
        group = self.session.current_item()
        if group is None:
            return []
        self.session.selected_release_group = group
        self._enter(Phase.RELEASE_LOADING, status="Loading track info...")
        return [FetchReleases(self._ticket(), group.id)]

    def _select_current_release(self, intent: Intent) -> list[Effect]:
        release = self.session.current_item()
        if release is None:
            return []
        return self._select_release(release)

    def _select_release(self, release: Release) -> list[Effect]:
        s = self.session
        s.selected_release = release
        s.expected_tracks = release.track_count
        self._enter(Phase.RELEASE_DETAILS_LOADING, status="Loading release details...")
        return [FetchReleaseDetails(self._ticket(), release.id)]

    def _queue_current_source(self, intent: Intent) -> list[Effect]:
        candidate = self.session.current_item()
        if candidate is None:
            return []
        self.session.selected_source = candidate
        self._enter(Phase.QUEUING_TRANSFER, status="Queueing download...")
        return [QueueTransfer(self._ticket(), candidate.username, candidate.files)]

    def _back(self, intent: Intent) -> list[Effect]:
        self._pending = None
        self._retreat()
        self.session.status = ""
        self.session.error = ""
        return []

    def _retreat(self) -> None:
        """Return to the previous results phase, clearing what was derived after it."""
        s = self.session
        phase = s.phase
        if phase is Phase.ARTIST_SEARCHING:
            self._move(Phase.AWAITING_QUERY)
        elif phase is Phase.ARTIST_RESULTS:
            s.clear_query()
            self._move(Phase.AWAITING_QUERY)
        elif phase in (Phase.RELEASE_GROUP_LOADING, Phase.RELEASE_GROUP_RESULTS):
            s.clear_artist()
            self._move(Phase.ARTIST_RESULTS)
        elif phase in (Phase.RELEASE_LOADING, Phase.RELEASE_RESULTS):
            s.clear_release_group()
            self._move(Phase.RELEASE_GROUP_RESULTS)
        elif phase is Phase.RELEASE_DETAILS_LOADING:
            s.clear_release()
            s.expected_tracks = s.resolved_track_count() or 0
            self._move(Phase.RELEASE_RESULTS)
        elif phase in (Phase.SOURCE_SEARCHING, Phase.SOURCE_RESULTS):
            s.clear_release()
            s.expected_tracks = s.resolved_track_count() or 0
            self._move(Phase.RELEASE_RESULTS)
        elif phase is Phase.QUEUING_TRANSFER:
            s.selected_source = None
            self._move(Phase.SOURCE_RESULTS)

    def _cycle_format(self, intent: Intent) -> list[Effect]:
        s = self.session
        s.filters.format = s.filters.format.next()
        s.refresh_sources()
        self._source_results_status()
        return []

    def _toggle_slot(self, intent: Intent) -> list[Effect]:
        s = self.session
        s.filters.no_slot = not s.filters.no_slot
        s.refresh_sources()
        self._source_results_status()
        return []

    def _toggle_track_count(self, intent: Intent) -> list[Effect]:
        s = self.session
        s.filters.track_count = not s.filters.track_count
        s.refresh_sources()
        self._source_results_status()
        return []

    def _toggle_albums_only(self, intent: Intent) -> list[Effect]:
        s = self.session
        s.filters.albums_only = not s.filters.albums_only
        s.refresh_release_groups()
        s.status = "No releases found" if not s.release_groups else ""
        return []

    def _toggle_dedup(self, intent: Intent) -> list[Effect]:
        s = self.session
        s.filters.dedup = not s.filters.dedup
        s.refresh_releases()
        s.expected_tracks = s.resolved_track_count() or 0
        return []

    # Results

    def _handle_result(self, result: Result) -> list[Effect]:
        entry = _RESULT_TABLE.get(type(result))
        if entry is None:
            return []
        expected_phase, handler = entry
        pending = self._pending
        if (
            pending is None
            or pending.op_id != result.op_id
            or pending.phase is not expected_phase
            or self.session.phase is not expected_phase
        ):
            logger.get_logger().debug(
                f"Discarding stale {type(result).__name__} (op {result.op_id}) in {self.session.phase.value}"
            )
            return []
        self._pending = None
        return handler(self, result)

    def _on_artists(self, result: ArtistsResult) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"Search error: {result.error}")
        s.artists = list(result.artists)
        s.artist_cursor = 0
        self._enter(Phase.ARTIST_RESULTS, status="" if s.artists else "No artists found")
        return []

    def _on_release_groups(self, result: ReleaseGroupsResult) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"Error loading releases: {result.error}")
        s.raw_release_groups = list(result.release_groups)
        s.release_group_cursor = 0
        s.refresh_release_groups()
        self._enter(Phase.RELEASE_GROUP_RESULTS, status="" if s.release_groups else "No releases found")
        return []

    def _on_releases(self, result: ReleasesResult) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"Error loading releases: {result.error}")
        s.raw_releases = list(result.releases)
        s.release_cursor = 0
        s.refresh_releases()
        if not s.releases:
            s.expected_tracks = 0
            self._enter(Phase.RELEASE_RESULTS, status="No releases found for this release group")
            return []

        resolved = s.resolved_track_count()
        s.expected_tracks = resolved or 0
        self._enter(Phase.RELEASE_RESULTS, status="Select a release")
        if resolved is None:
            return []
        release = first_release_with_track_count(s.releases, resolved)
        if release is None:
            return []
        s.release_cursor = s.releases.index(release)
        logger.get_logger().debug(f"Track count resolved to {resolved}; using release {release.id}")
        return self._select_release(release)

    def _on_release_details(self, result: ReleaseDetailsResult) -> list[Effect]:
        s = self.session
        if result.error or result.details is None:
            return self._fail(f"Error loading release details: {result.error or 'empty response'}")
        s.selected_release_details = result.details
        artist_name = s.selected_artist.name if s.selected_artist else ""
        title = s.selected_release_group.title if s.selected_release_group else ""
        self._enter(Phase.SOURCE_SEARCHING, status="Searching slskd...")
        return [StartSourceSearch(self._ticket(), f"{artist_name} {title}".strip())]

    def _on_search_started(self, result: SearchStarted) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"slskd error: {result.error}")
        s.search_id = result.search_id
        s.poll_state = PollState(search_id=result.search_id)
        return [self._schedule_poll(s.poll_state)]

    def _on_poll_progress(self, result: PollProgress) -> list[Effect]:
        s = self.session
        s.poll_state = result.poll_state
        s.status = poll_status_line(result.poll_state, self.poll_settings)
        return [self._schedule_poll(result.poll_state)]

    def _on_search_finished(self, result: SearchFinished) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"slskd error: {result.error}")
        search_id = s.search_id
        s.poll_state = None
        s.raw_responses = list(result.responses)
        s.source_cursor = 0
        s.refresh_sources()
        self._enter(Phase.SOURCE_RESULTS)
        self._source_results_status()
        if result.timed_out:
            logger.get_logger().debug(f"Search {search_id} hit the poll ceiling; using partial results")
        if self.delete_searches and search_id:
            return [DeleteSearch(search_id)]
        return []

    def _on_transfer_queued(self, result: TransferQueued) -> list[Effect]:
        s = self.session
        if result.error:
            return self._fail(f"Download error: {result.error}")
        record = self._build_record()
        s.reset()
        s.transfer_complete = True
        s.status = TRANSFER_COMPLETE_STATUS
        if record is None:
            return []
        return [EmitRecord(record)]

    # Helpers

    def _ticket(self) -> int:
        self._last_op_id += 1
        self._pending = _Pending(self._last_op_id, self.session.phase)
        return self._last_op_id

    def _move(self, phase: Phase) -> None:
        previous = self.session.phase
        self.session.phase = phase
        if previous is not phase:
            logger.get_logger().debug(f"phase {previous.value} -> {phase.value}")

    def _enter(self, phase: Phase, status: str = "") -> None:
        self._move(phase)
        self.session.status = status
        self.session.error = ""

    def _fail(self, message: str) -> list[Effect]:
        """Upstream failure: fall back like ``back`` would and surface the message."""
        self._retreat()
        self.session.status = ""
        self.session.error = message
        return []

    def _schedule_poll(self, state: PollState) -> PollSearch:
        return PollSearch(self._ticket(), state, self.poll_settings.interval_seconds)

    def _source_results_status(self) -> None:
        self.session.status = "" if self.session.sources else "No matching results found"

    def _build_record(self) -> Optional[QueuedRecord]:
        s = self.session
        candidate = s.selected_source
        if s.selected_artist is None or s.selected_release_group is None or candidate is None:
            return None
        return QueuedRecord(
            release_group_id=s.selected_release_group.id,
            release_id=s.selected_release.id if s.selected_release else "",
            artist_name=s.selected_artist.name,
            album_title=s.selected_release_group.title,
            release_year=s.selected_release_group.first_release,
            source_username=candidate.username,
            source_directory=candidate.directory,
            files=tuple(FileEntry(f.filename, f.size) for f in candidate.files),
            release_group=s.selected_release_group,
            release_details=s.selected_release_details,
        )


_INTENT_TABLE: dict[tuple[Phase, IntentKind], IntentHandler] = {
    (Phase.AWAITING_QUERY, IntentKind.CONFIRM): Orchestrator._submit_query,
    (Phase.ARTIST_RESULTS, IntentKind.CONFIRM): Orchestrator._select_artist,
    (Phase.RELEASE_GROUP_RESULTS, IntentKind.CONFIRM): Orchestrator._select_release_group,
    (Phase.RELEASE_RESULTS, IntentKind.CONFIRM): Orchestrator._select_current_release,
    (Phase.SOURCE_RESULTS, IntentKind.CONFIRM): Orchestrator._queue_current_source,
    (Phase.RELEASE_GROUP_RESULTS, IntentKind.TOGGLE_ALBUMS_ONLY): Orchestrator._toggle_albums_only,
    (Phase.RELEASE_RESULTS, IntentKind.TOGGLE_DEDUP): Orchestrator._toggle_dedup,
    (Phase.SOURCE_RESULTS, IntentKind.CYCLE_FORMAT): Orchestrator._cycle_format,
    (Phase.SOURCE_RESULTS, IntentKind.TOGGLE_SLOT): Orchestrator._toggle_slot,
    (Phase.SOURCE_RESULTS, IntentKind.TOGGLE_TRACK_COUNT): Orchestrator._toggle_track_count,
}
_INTENT_TABLE.update({
    (phase, IntentKind.BACK): Orchestrator._back
    for phase in Phase
    if phase is not Phase.AWAITING_QUERY
})

_RESULT_TABLE: dict[type, tuple[Phase, Callable]] = {
    ArtistsResult: (Phase.ARTIST_SEARCHING, Orchestrator._on_artists),
    ReleaseGroupsResult: (Phase.RELEASE_GROUP_LOADING, Orchestrator._on_release_groups),
    ReleasesResult: (Phase.RELEASE_LOADING, Orchestrator._on_releases),
    ReleaseDetailsResult: (Phase.RELEASE_DETAILS_LOADING, Orchestrator._on_release_details),
    SearchStarted: (Phase.SOURCE_SEARCHING, Orchestrator._on_search_started),
    PollProgress: (Phase.SOURCE_SEARCHING, Orchestrator._on_poll_progress),
    SearchFinished: (Phase.SOURCE_SEARCHING, Orchestrator._on_search_finished),
    TransferQueued: (Phase.QUEUING_TRANSFER, Orchestrator._on_transfer_queued),
}
