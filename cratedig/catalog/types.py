"""MusicBrainz value objects. Immutable once fetched."""

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class Artist:
    id: str
    name: str
    sort_name: str = ""
    type: str = ""  # Person, Group, ...
    country: str = ""
    score: int = 0  # search relevance 0-100
    disambiguation: str = ""
    begin_year: str = ""
    end_year: str = ""


@dataclass(frozen=True)
class ReleaseGroup:
    """Abstract album across all of its editions."""
    id: str
    title: str
    primary_type: str = ""  # Album, Single, EP, ...
    secondary_types: Tuple[str, ...] = ()
    first_release: str = ""  # YYYY, YYYY-MM or YYYY-MM-DD
    artist: str = ""

    @property
    def year(self) -> str:
        return extract_year(self.first_release)


@dataclass(frozen=True)
class Release:
    """One concrete edition with a definite track count."""
    id: str
    title: str
    artist: str = ""
    date: str = ""
    country: str = ""
    track_count: int = 0  # summed over all media
    disc_count: int = 0
    score: int = 0
    release_type: str = ""
    status: str = ""
    formats: str = ""  # "CD, CD" / "Digital Media" ...

    @property
    def year(self) -> str:
        return extract_year(self.date)


@dataclass(frozen=True)
class Track:
    position: int
    title: str
    length_ms: int = 0
    disc_number: int = 1
    recording_id: str = ""
    track_id: str = ""
    artist: str = ""


@dataclass(frozen=True)
class ReleaseDetails:
    release: Release
    tracks: Tuple[Track, ...] = field(default_factory=tuple)
    release_group_id: str = ""
    label: str = ""
    catalog_number: str = ""
    barcode: str = ""


def extract_year(date: str) -> str:
    """Year portion of a YYYY[-MM[-DD]] date string."""
    if len(date) >= 4:
        return date[:4]
    return date
