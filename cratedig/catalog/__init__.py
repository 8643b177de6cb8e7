"""MusicBrainz catalog access: client, payload parsing and release shaping."""

from .client import MusicBrainzClient
from .releases import (
    deduplicate_releases,
    filter_release_groups,
    first_release_with_track_count,
    resolve_track_count,
    shape_releases,
    sort_releases_by_date,
)
from .types import Artist, Release, ReleaseDetails, ReleaseGroup, Track

__all__ = [
    "Artist",
    "MusicBrainzClient",
    "Release",
    "ReleaseDetails",
    "ReleaseGroup",
    "Track",
    "deduplicate_releases",
    "filter_release_groups",
    "first_release_with_track_count",
    "resolve_track_count",
    "shape_releases",
    "sort_releases_by_date",
]
