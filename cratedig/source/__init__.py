"""Soulseek access through slskd: client, search polling and candidate scoring."""

from .client import SlskdClient
from .poller import PollContinue, PollFinished, PollSettings, PollState, poll_status_line, poll_tick
from .scoring import CandidateSource, FilterOptions, FilterStats, FormatFilter, filter_and_score
from .types import PeerFile, PeerResponse, SearchStatus, is_complete_state

__all__ = [
    "CandidateSource",
    "FilterOptions",
    "FilterStats",
    "FormatFilter",
    "PeerFile",
    "PeerResponse",
    "PollContinue",
    "PollFinished",
    "PollSettings",
    "PollState",
    "SearchStatus",
    "SlskdClient",
    "filter_and_score",
    "is_complete_state",
    "poll_status_line",
    "poll_tick",
]
