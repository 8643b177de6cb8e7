"""
Search poll controller.

slskd flips a search to Completed before every peer response has streamed in,
so one poll tick decides between "keep polling", "fetch now" and "fetch again"
from the counters carried in ``PollState``. The caller sleeps between ticks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Protocol, Union

from cratedig import logger
from cratedig.config import SourceConfig
from cratedig.source.types import IN_PROGRESS_STATE, PeerResponse, SearchStatus


class SearchBackend(Protocol):
    async def get_search_status(self, search_id: str) -> SearchStatus: ...

    async def get_search_responses(self, search_id: str) -> list[PeerResponse]: ...


@dataclass(frozen=True)
class PollSettings:
    interval_seconds: float = 0.5
    max_polls: int = 120
    stable_polls: int = 6
    max_fetch_retries: int = 20

    @classmethod
    def from_config(cls, config: SourceConfig) -> "PollSettings":
        return cls(
            interval_seconds=config.poll_interval_seconds,
            max_polls=config.max_polls,
            stable_polls=config.stable_polls,
            max_fetch_retries=config.max_fetch_retries,
        )


@dataclass(frozen=True)
class PollState:
    search_id: str
    state: str = ""
    response_count: int = 0  # last count seen
    stable_polls: int = 0
    fetch_retries: int = 0
    total_polls: int = 0


@dataclass(frozen=True)
class PollContinue:
    state: PollState


@dataclass(frozen=True)
class PollFinished:
    responses: list[PeerResponse]
    timed_out: bool = False


PollOutcome = Union[PollContinue, PollFinished]


async def poll_tick(backend: SearchBackend, state: PollState, settings: PollSettings) -> PollOutcome:
    """
    Run one poll step. Errors from the backend propagate to the caller.
    """
    status = await backend.get_search_status(state.search_id)
    total = state.total_polls + 1
    complete = status.is_complete
    logger.get_logger().poll_tick(
        state.search_id, status.state, status.response_count, state.stable_polls, state.fetch_retries, total
    )

    if total >= settings.max_polls and not complete:
        responses = await backend.get_search_responses(state.search_id)
        return PollFinished(responses=responses, timed_out=True)

    seen = replace(state, state=status.state, response_count=status.response_count, total_polls=total)

    if not complete:
        return PollContinue(replace(seen, stable_polls=0, fetch_retries=0))

    if status.response_count > state.response_count:
        # Completed but still growing; completion is not trusted yet.
        return PollContinue(replace(seen, stable_polls=0, fetch_retries=0))

    if state.stable_polls < settings.stable_polls:
        return PollContinue(replace(seen, stable_polls=state.stable_polls + 1, fetch_retries=0))

    responses = await backend.get_search_responses(state.search_id)
    if not responses and status.response_count > 0 and state.fetch_retries < settings.max_fetch_retries:
        return PollContinue(replace(seen, fetch_retries=state.fetch_retries + 1))

    return PollFinished(responses=responses)


def poll_status_line(state: PollState, settings: PollSettings | None = None) -> str:
    """Human status for the poll in progress."""
    if state.fetch_retries > 0:
        return f"Waiting for results... ({state.response_count} users, attempt {state.fetch_retries})"
    if state.stable_polls > 0:
        return f"Collecting results... ({state.response_count} users responded)"

    state_info = "searching"
    if state.state and state.state != IN_PROGRESS_STATE:
        state_info = state.state
    interval = (settings or PollSettings()).interval_seconds
    elapsed = int(state.total_polls * interval)
    if elapsed > 10:
        return f"Searching Soulseek ({state_info}) - {state.response_count} users ({elapsed}s)"
    return f"Searching Soulseek ({state_info}) - {state.response_count} users responded"
