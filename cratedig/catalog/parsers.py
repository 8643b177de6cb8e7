"""Map MusicBrainz WS2 JSON payloads onto catalog value objects."""

from __future__ import annotations

from cratedig.catalog.types import (
    Artist,
    Release,
    ReleaseDetails,
    ReleaseGroup,
    Track,
    extract_year,
)
from cratedig.resilience import (
    expect_dict,
    optional_dict,
    optional_int,
    optional_list,
    optional_list_of_dicts,
    optional_str,
)


def join_artist_credit(credits: list[dict]) -> str:
    """Concatenate credited names with their join phrases ("A feat. B")."""
    parts: list[str] = []
    for credit in credits:
        name = optional_str(credit, "name")
        if not name:
            name = optional_str(credit.get("artist") or {}, "name")
        parts.append(name + optional_str(credit, "joinphrase"))
    return "".join(parts)


def parse_artist(raw: dict) -> Artist:
    life_span = raw.get("life-span") or {}
    return Artist(
        id=optional_str(raw, "id"),
        name=optional_str(raw, "name"),
        sort_name=optional_str(raw, "sort-name"),
        type=optional_str(raw, "type"),
        country=optional_str(raw, "country"),
        score=optional_int(raw, "score"),
        disambiguation=optional_str(raw, "disambiguation"),
        begin_year=extract_year(optional_str(life_span, "begin")),
        end_year=extract_year(optional_str(life_span, "end")),
    )


def parse_artist_search(payload: object) -> list[Artist]:
    root = expect_dict(payload, "artist search payload")
    return [parse_artist(raw) for raw in optional_list_of_dicts(root, "artists", "artist search")]


def parse_release_group(raw: dict) -> ReleaseGroup:
    secondary = tuple(t for t in optional_list(raw, "secondary-types", "release-group") if isinstance(t, str))
    return ReleaseGroup(
        id=optional_str(raw, "id"),
        title=optional_str(raw, "title"),
        primary_type=optional_str(raw, "primary-type"),
        secondary_types=secondary,
        first_release=optional_str(raw, "first-release-date"),
        artist=join_artist_credit(optional_list_of_dicts(raw, "artist-credit", "release-group")),
    )


def parse_release_group_browse(payload: object) -> list[ReleaseGroup]:
    root = expect_dict(payload, "release-group browse payload")
    groups = [
        parse_release_group(raw)
        for raw in optional_list_of_dicts(root, "release-groups", "release-group browse")
    ]
    # Newest first
    groups.sort(key=lambda g: g.first_release, reverse=True)
    return groups


def _media_summary(media: list[dict]) -> tuple[int, str]:
    track_count = 0
    formats: list[str] = []
    for medium in media:
        track_count += optional_int(medium, "track-count")
        fmt = optional_str(medium, "format")
        if fmt:
            formats.append(fmt)
    return track_count, ", ".join(formats)


def parse_release(raw: dict) -> Release:
    media = optional_list_of_dicts(raw, "media", "release")
    track_count, formats = _media_summary(media)
    group = optional_dict(raw, "release-group", "release")
    return Release(
        id=optional_str(raw, "id"),
        title=optional_str(raw, "title"),
        artist=join_artist_credit(optional_list_of_dicts(raw, "artist-credit", "release")),
        date=optional_str(raw, "date"),
        country=optional_str(raw, "country"),
        track_count=track_count,
        disc_count=len(media),
        score=optional_int(raw, "score"),
        release_type=optional_str(group, "primary-type"),
        status=optional_str(raw, "status"),
        formats=formats,
    )


def parse_release_browse(payload: object) -> list[Release]:
    root = expect_dict(payload, "release browse payload")
    return [parse_release(raw) for raw in optional_list_of_dicts(root, "releases", "release browse")]


def _parse_track(raw: dict, disc_number: int) -> Track:
    recording = raw.get("recording") or {}
    position = optional_int(raw, "position")
    return Track(
        position=position,
        title=optional_str(raw, "title") or optional_str(recording, "title"),
        length_ms=optional_int(raw, "length") or optional_int(recording, "length"),
        disc_number=disc_number,
        recording_id=optional_str(recording, "id"),
        track_id=optional_str(raw, "id"),
        artist=join_artist_credit(optional_list_of_dicts(raw, "artist-credit", "track")),
    )


def parse_release_details(payload: object) -> ReleaseDetails:
    root = expect_dict(payload, "release payload")
    release = parse_release(root)
    tracks: list[Track] = []
    for idx, medium in enumerate(optional_list_of_dicts(root, "media", "release"), start=1):
        disc_number = optional_int(medium, "position") or idx
        for raw_track in optional_list_of_dicts(medium, "tracks", f"release.media[{idx - 1}]"):
            tracks.append(_parse_track(raw_track, disc_number))

    label = ""
    catalog_number = ""
    label_info = optional_list_of_dicts(root, "label-info", "release")
    if label_info:
        first = label_info[0]
        label = optional_str(first.get("label") or {}, "name")
        catalog_number = optional_str(first, "catalog-number")

    group = optional_dict(root, "release-group", "release")
    return ReleaseDetails(
        release=release,
        tracks=tuple(tracks),
        release_group_id=optional_str(group, "id"),
        label=label,
        catalog_number=catalog_number,
        barcode=optional_str(root, "barcode"),
    )
