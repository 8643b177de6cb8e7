"""
Messages flowing through the acquisition flow.

Inbound: user ``Intent`` objects and operation ``*Result`` objects.
Outbound: ``Operation`` requests for the runtime to execute, plus the
``EmitRecord`` and ``CloseFlow`` notifications.

Every operation carries an ``op_id``; its result echoes it back so the
orchestrator can drop results it no longer waits for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from cratedig.catalog.types import Artist, Release, ReleaseDetails, ReleaseGroup
from cratedig.flow.records import QueuedRecord
from cratedig.source.poller import PollState
from cratedig.source.types import PeerFile, PeerResponse


class IntentKind(str, Enum):
    CONFIRM = "confirm"
    BACK = "back"
    CANCEL = "cancel"
    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    CYCLE_FORMAT = "cycle_format"
    TOGGLE_SLOT = "toggle_slot"
    TOGGLE_TRACK_COUNT = "toggle_track_count"
    TOGGLE_ALBUMS_ONLY = "toggle_albums_only"
    TOGGLE_DEDUP = "toggle_dedup"


NAVIGATION_INTENTS = frozenset({IntentKind.UP, IntentKind.DOWN, IntentKind.HOME, IntentKind.END})


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    text: str = ""  # search text, only read by confirm while awaiting a query


# Operation requests

@dataclass(frozen=True)
class SearchArtists:
    op_id: int
    query: str


@dataclass(frozen=True)
class FetchReleaseGroups:
    op_id: int
    artist_id: str


@dataclass(frozen=True)
class FetchReleases:
    op_id: int
    release_group_id: str


@dataclass(frozen=True)
class FetchReleaseDetails:
    op_id: int
    release_id: str


@dataclass(frozen=True)
class StartSourceSearch:
    op_id: int
    query: str


@dataclass(frozen=True)
class PollSearch:
    op_id: int
    poll_state: PollState
    delay: float


@dataclass(frozen=True)
class QueueTransfer:
    op_id: int
    username: str
    files: tuple[PeerFile, ...]


@dataclass(frozen=True)
class DeleteSearch:
    """Best-effort clean-up; produces no result message."""
    search_id: str


Operation = Union[
    SearchArtists,
    FetchReleaseGroups,
    FetchReleases,
    FetchReleaseDetails,
    StartSourceSearch,
    PollSearch,
    QueueTransfer,
    DeleteSearch,
]


@dataclass(frozen=True)
class EmitRecord:
    record: QueuedRecord


@dataclass(frozen=True)
class CloseFlow:
    pass


Effect = Union[Operation, EmitRecord, CloseFlow]


# Operation results. ``error`` is set instead of the payload when the call failed.

@dataclass(frozen=True)
class ArtistsResult:
    op_id: int
    artists: list[Artist] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class ReleaseGroupsResult:
    op_id: int
    release_groups: list[ReleaseGroup] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class ReleasesResult:
    op_id: int
    releases: list[Release] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class ReleaseDetailsResult:
    op_id: int
    details: Optional[ReleaseDetails] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SearchStarted:
    op_id: int
    search_id: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class PollProgress:
    """The search is still settling; ``poll_state`` carries the updated counters.

    A failed tick is reported as ``SearchFinished`` with ``error`` set.
    """
    op_id: int
    poll_state: PollState


@dataclass(frozen=True)
class SearchFinished:
    op_id: int
    responses: list[PeerResponse] = field(default_factory=list)
    timed_out: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class TransferQueued:
    op_id: int
    error: Optional[str] = None


Result = Union[
    ArtistsResult,
    ReleaseGroupsResult,
    ReleasesResult,
    ReleaseDetailsResult,
    SearchStarted,
    PollProgress,
    SearchFinished,
    TransferQueued,
]

Message = Union[Intent, Result]
