"""Mutable state of one acquisition flow. Only the orchestrator writes to it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from cratedig.catalog.releases import filter_release_groups, resolve_track_count, shape_releases
from cratedig.catalog.types import Artist, Release, ReleaseDetails, ReleaseGroup
from cratedig.config import FilterDefaults
from cratedig.flow.phases import Phase
from cratedig.source.poller import PollState
from cratedig.source.scoring import CandidateSource, FilterOptions, FilterStats, FormatFilter, filter_and_score
from cratedig.source.types import PeerResponse


@dataclass
class FilterConfig:
    format: FormatFilter = FormatFilter.LOSSLESS
    no_slot: bool = True
    track_count: bool = True
    albums_only: bool = True
    dedup: bool = True

    @classmethod
    def from_defaults(cls, defaults: FilterDefaults) -> "FilterConfig":
        return cls(
            format=FormatFilter(defaults.format),
            no_slot=defaults.no_slot,
            track_count=defaults.track_count,
            albums_only=defaults.albums_only,
            dedup=defaults.deduplicate_releases,
        )


def clamp_cursor(cursor: int, length: int) -> int:
    if length <= 0:
        return 0
    return min(max(cursor, 0), length - 1)


@dataclass
class Session:
    filters: FilterConfig = field(default_factory=FilterConfig)
    phase: Phase = Phase.AWAITING_QUERY
    query: str = ""

    artists: list[Artist] = field(default_factory=list)
    artist_cursor: int = 0
    selected_artist: Optional[Artist] = None

    raw_release_groups: list[ReleaseGroup] = field(default_factory=list)
    release_groups: list[ReleaseGroup] = field(default_factory=list)
    release_group_cursor: int = 0
    selected_release_group: Optional[ReleaseGroup] = None

    raw_releases: list[Release] = field(default_factory=list)
    releases: list[Release] = field(default_factory=list)
    release_cursor: int = 0
    expected_tracks: int = 0
    selected_release: Optional[Release] = None
    selected_release_details: Optional[ReleaseDetails] = None

    search_id: str = ""
    poll_state: Optional[PollState] = None
    raw_responses: list[PeerResponse] = field(default_factory=list)
    sources: list[CandidateSource] = field(default_factory=list)
    source_cursor: int = 0
    filter_stats: FilterStats = field(default_factory=FilterStats)
    selected_source: Optional[CandidateSource] = None

    status: str = ""
    error: str = ""
    transfer_complete: bool = False
    closed: bool = False

    # Re-derivation from the raw lists

    def refresh_release_groups(self) -> None:
        self.release_groups = filter_release_groups(self.raw_release_groups, self.filters.albums_only)
        self.release_group_cursor = clamp_cursor(self.release_group_cursor, len(self.release_groups))

    def refresh_releases(self) -> None:
        self.releases = shape_releases(self.raw_releases, self.filters.dedup)
        self.release_cursor = clamp_cursor(self.release_cursor, len(self.releases))

    def resolved_track_count(self) -> Optional[int]:
        return resolve_track_count(self.releases)

    def source_filter_options(self) -> FilterOptions:
        year = self.selected_release.year if self.selected_release else ""
        return FilterOptions(
            format=self.filters.format,
            no_slot=self.filters.no_slot,
            track_count=self.filters.track_count,
            expected_tracks=self.expected_tracks,
            release_year=year if len(year) == 4 else "",
        )

    def refresh_sources(self) -> None:
        self.sources, self.filter_stats = filter_and_score(self.raw_responses, self.source_filter_options())
        self.source_cursor = clamp_cursor(self.source_cursor, len(self.sources))

    # Downstream clearing, one level per selection

    def clear_source(self) -> None:
        self.search_id = ""
        self.poll_state = None
        self.raw_responses = []
        self.sources = []
        self.source_cursor = 0
        self.filter_stats = FilterStats()
        self.selected_source = None

    def clear_release(self) -> None:
        self.clear_source()
        self.selected_release = None
        self.selected_release_details = None

    def clear_release_group(self) -> None:
        self.clear_release()
        self.selected_release_group = None
        self.raw_releases = []
        self.releases = []
        self.release_cursor = 0
        self.expected_tracks = 0

    def clear_artist(self) -> None:
        self.clear_release_group()
        self.selected_artist = None
        self.raw_release_groups = []
        self.release_groups = []
        self.release_group_cursor = 0

    def clear_query(self) -> None:
        self.clear_artist()
        self.artists = []
        self.artist_cursor = 0

    def reset(self) -> None:
        """Back to an empty query; filter settings survive."""
        self.clear_query()
        self.phase = Phase.AWAITING_QUERY
        self.query = ""
        self.status = ""
        self.error = ""
        self.transfer_complete = False

    # Cursor over whichever list the phase owns

    def current_list(self) -> list:
        if self.phase is Phase.ARTIST_RESULTS:
            return self.artists
        if self.phase is Phase.RELEASE_GROUP_RESULTS:
            return self.release_groups
        if self.phase is Phase.RELEASE_RESULTS:
            return self.releases
        if self.phase is Phase.SOURCE_RESULTS:
            return self.sources
        return []

    def current_cursor(self) -> int:
        return getattr(self, _CURSOR_FIELDS[self.phase]) if self.phase in _CURSOR_FIELDS else 0

    def set_current_cursor(self, value: int) -> None:
        name = _CURSOR_FIELDS.get(self.phase)
        if name is not None:
            setattr(self, name, clamp_cursor(value, len(self.current_list())))

    def current_item(self):
        items = self.current_list()
        cursor = self.current_cursor()
        if 0 <= cursor < len(items):
            return items[cursor]
        return None


_CURSOR_FIELDS = {
    Phase.ARTIST_RESULTS: "artist_cursor",
    Phase.RELEASE_GROUP_RESULTS: "release_group_cursor",
    Phase.RELEASE_RESULTS: "release_cursor",
    Phase.SOURCE_RESULTS: "source_cursor",
}
