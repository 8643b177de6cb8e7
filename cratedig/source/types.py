"""slskd search payload objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from cratedig.resilience import expect_dict, optional_int, optional_list_of_dicts, optional_str

# Search states that mean slskd has stopped collecting responses.
TERMINAL_STATES = ("Completed", "TimedOut", "Cancelled", "Errored")
IN_PROGRESS_STATE = "InProgress"


def is_complete_state(state: str) -> bool:
    """slskd reports composite states such as ``"Completed, TimedOut"``."""
    return any(marker in state for marker in TERMINAL_STATES)


@dataclass(frozen=True)
class PeerFile:
    filename: str  # full remote path, either separator style
    size: int = 0
    extension: str = ""
    bit_rate: int = 0
    bit_depth: int = 0
    length: int = 0  # seconds


@dataclass(frozen=True)
class PeerResponse:
    """Everything one peer returned for a search."""
    username: str
    has_free_upload_slot: bool = False
    upload_speed: int = 0
    queue_length: int = 0
    files: Tuple[PeerFile, ...] = ()


@dataclass(frozen=True)
class SearchStatus:
    id: str
    state: str = ""
    response_count: int = 0
    file_count: int = 0

    @property
    def is_complete(self) -> bool:
        return is_complete_state(self.state)


def parse_peer_file(raw: dict) -> PeerFile:
    return PeerFile(
        filename=optional_str(raw, "filename"),
        size=optional_int(raw, "size"),
        extension=optional_str(raw, "extension"),
        bit_rate=optional_int(raw, "bitRate"),
        bit_depth=optional_int(raw, "bitDepth"),
        length=optional_int(raw, "length"),
    )


def parse_peer_response(raw: dict) -> PeerResponse:
    files = tuple(parse_peer_file(f) for f in optional_list_of_dicts(raw, "files", "search response"))
    return PeerResponse(
        username=optional_str(raw, "username"),
        has_free_upload_slot=bool(raw.get("hasFreeUploadSlot")),
        upload_speed=optional_int(raw, "uploadSpeed"),
        queue_length=optional_int(raw, "queueLength"),
        files=files,
    )


def parse_search_status(payload: object, search_id: str = "") -> SearchStatus:
    root = expect_dict(payload, "search status payload")
    return SearchStatus(
        id=optional_str(root, "id") or search_id,
        state=optional_str(root, "state"),
        response_count=optional_int(root, "responseCount"),
        file_count=optional_int(root, "fileCount"),
    )
