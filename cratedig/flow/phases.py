"""Acquisition flow phases."""

from enum import Enum


class Phase(str, Enum):
    AWAITING_QUERY = "AwaitingQuery"
    ARTIST_SEARCHING = "ArtistSearching"
    ARTIST_RESULTS = "ArtistResults"

    RELEASE_GROUP_LOADING = "ReleaseGroupLoading"
    RELEASE_GROUP_RESULTS = "ReleaseGroupResults"
    RELEASE_LOADING = "ReleaseLoading"
    RELEASE_RESULTS = "ReleaseResults"
    RELEASE_DETAILS_LOADING = "ReleaseDetailsLoading"

    SOURCE_SEARCHING = "SourceSearching"
    SOURCE_RESULTS = "SourceResults"
    QUEUING_TRANSFER = "QueuingTransfer"

    @property
    def is_loading(self) -> bool:
        return self in _LOADING

    @property
    def can_navigate(self) -> bool:
        """Only the list-owning results phases accept cursor movement."""
        return self in _NAVIGABLE


_LOADING = frozenset({
    Phase.ARTIST_SEARCHING,
    Phase.RELEASE_GROUP_LOADING,
    Phase.RELEASE_LOADING,
    Phase.RELEASE_DETAILS_LOADING,
    Phase.SOURCE_SEARCHING,
    Phase.QUEUING_TRANSFER,
})

_NAVIGABLE = frozenset({
    Phase.ARTIST_RESULTS,
    Phase.RELEASE_GROUP_RESULTS,
    Phase.RELEASE_RESULTS,
    Phase.SOURCE_RESULTS,
})
