"""Release-list shaping: album filtering, edition dedup, track-count resolution."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from cratedig.catalog.types import Release, ReleaseGroup

_EXCLUDED_SECONDARY_TYPES = frozenset({"Live", "Compilation"})

# Worldwide first, then US, then everything else.
_COUNTRY_PRIORITY = {"XW": 0, "US": 1}
_OTHER_COUNTRY_PRIORITY = 2

# Outlier allowance when several editions disagree on the track count.
TRACK_COUNT_MAX_OUTLIERS = 2
TRACK_COUNT_MAJORITY_RATIO = 0.75


def is_studio_album(group: ReleaseGroup) -> bool:
    if group.primary_type != "Album":
        return False
    return not any(t in _EXCLUDED_SECONDARY_TYPES for t in group.secondary_types)


def filter_release_groups(groups: Iterable[ReleaseGroup], albums_only: bool) -> list[ReleaseGroup]:
    """Keep only studio albums when ``albums_only`` is set; order is preserved."""
    if not albums_only:
        return list(groups)
    return [g for g in groups if is_studio_album(g)]


def sort_releases_by_date(releases: Iterable[Release]) -> list[Release]:
    return sorted(releases, key=lambda r: r.date)


def _country_priority(country: str) -> int:
    return _COUNTRY_PRIORITY.get(country, _OTHER_COUNTRY_PRIORITY)


def _dedup_key(release: Release) -> tuple[int, str, str, str]:
    return (release.track_count, release.year, release.formats, release.release_type)


def deduplicate_releases(releases: Iterable[Release]) -> list[Release]:
    """
    Collapse editions that agree on track count, year, media formats and type.

    The survivor of each group keeps the slot of the first edition seen; it is
    replaced only by an edition from a strictly better country (XW > US > other).
    """
    kept: list[Release] = []
    index_by_key: dict[tuple[int, str, str, str], int] = {}
    for release in releases:
        key = _dedup_key(release)
        idx = index_by_key.get(key)
        if idx is None:
            index_by_key[key] = len(kept)
            kept.append(release)
            continue
        if _country_priority(release.country) < _country_priority(kept[idx].country):
            kept[idx] = release
    return kept


def shape_releases(releases: Iterable[Release], dedup: bool) -> list[Release]:
    """Date-ascending release list, optionally deduplicated."""
    ordered = sort_releases_by_date(releases)
    if dedup:
        return deduplicate_releases(ordered)
    return ordered


def resolve_track_count(releases: list[Release]) -> Optional[int]:
    """
    Decide whether the editions agree on one track count.

    A single distinct count always resolves. Otherwise the most common count
    must beat every other count outright and either leave at most two
    outlying editions or cover three quarters of the list.
    """
    if not releases:
        return None
    counts = Counter(r.track_count for r in releases)
    # Counter keeps insertion order, so ties go to the first seen count.
    ranked = counts.most_common()
    top_count, top_freq = ranked[0]
    if len(ranked) == 1:
        return top_count
    if ranked[1][1] >= top_freq:
        return None
    total = len(releases)
    if total - top_freq <= TRACK_COUNT_MAX_OUTLIERS or top_freq / total >= TRACK_COUNT_MAJORITY_RATIO:
        return top_count
    return None


def first_release_with_track_count(releases: Iterable[Release], track_count: int) -> Optional[Release]:
    for release in releases:
        if release.track_count == track_count:
            return release
    return None
