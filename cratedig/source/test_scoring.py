from __future__ import annotations

from cratedig.source import scoring
from cratedig.source.scoring import FilterOptions, FormatFilter
from cratedig.source.types import PeerFile, PeerResponse


def _album(directory: str, count: int, ext: str = "flac", bit_rate: int = 0, sep: str = "/") -> tuple[PeerFile, ...]:
    return tuple(
        PeerFile(filename=f"{directory}{sep}{i:02d} Track.{ext}", size=1000 + i, bit_rate=bit_rate)
        for i in range(1, count + 1)
    )


def _peer(username: str, *files: PeerFile, slot: bool = True, speed: int = 100) -> PeerResponse:
    return PeerResponse(username=username, has_free_upload_slot=slot, upload_speed=speed, files=tuple(files))


def test_format_filter_cycles() -> None:
    assert FormatFilter.BOTH.next() is FormatFilter.LOSSLESS
    assert FormatFilter.LOSSLESS.next() is FormatFilter.LOSSY
    assert FormatFilter.LOSSY.next() is FormatFilter.BOTH
    assert FormatFilter.LOSSLESS.label == "Lossless"


def test_parent_directory_handles_both_separators() -> None:
    assert scoring.parent_directory("Music/Beatles/Abbey Road/01.flac") == "Music/Beatles/Abbey Road"
    assert scoring.parent_directory("@@x\\Music\\Abbey Road (1969)\\01.flac") == "@@x\\Music\\Abbey Road (1969)"
    assert scoring.parent_directory("loose.mp3") == "."


def test_file_extension_falls_back_to_filename() -> None:
    assert scoring.file_extension(PeerFile(filename="a/b.FLAC")) == "flac"
    assert scoring.file_extension(PeerFile(filename="a/b.mp3", extension=".MP3")) == "mp3"
    assert scoring.file_extension(PeerFile(filename="a/noext")) == ""


def test_directories_are_split_per_peer() -> None:
    response = _peer("u1", *_album("A/CD1", 3), *_album("A/CD2", 2))

    candidates, stats = scoring.filter_and_score([response], FilterOptions(track_count=False))

    assert [(c.directory, c.file_count) for c in candidates] == [("A/CD1", 3), ("A/CD2", 2)]
    assert stats.total_dirs == 2
    assert stats.total_responses == 1


def test_filters_count_each_drop_reason() -> None:
    responses = [
        _peer("busy", *_album("Busy/Abbey Road", 17), slot=False),
        _peer("art", PeerFile(filename="Art/Abbey Road/cover.jpg"), PeerFile(filename="Art/Abbey Road/info.nfo")),
        _peer("mp3", *_album("Mp3/Abbey Road", 17, ext="mp3", bit_rate=320)),
        _peer("flac", *_album("Flac/Abbey Road", 17)),
        _peer("short", *_album("Short/Abbey Road", 12)),
    ]
    options = FilterOptions(format=FormatFilter.LOSSLESS, expected_tracks=17)

    candidates, stats = scoring.filter_and_score(responses, options)

    assert [c.username for c in candidates] == ["flac"]
    assert candidates[0].format == "FLAC"
    assert stats.no_free_slot == 1
    assert stats.no_audio_files == 1
    assert stats.wrong_format == 1
    assert stats.wrong_track_count == 1
    assert stats.filtered_out == 4
    assert stats.expected_tracks == 17


def test_slot_filter_can_be_disabled() -> None:
    responses = [_peer("busy", *_album("Busy/Album", 10), slot=False)]

    candidates, stats = scoring.filter_and_score(responses, FilterOptions(no_slot=False, track_count=False))

    assert [c.username for c in candidates] == ["busy"]
    assert candidates[0].has_free_slot is False
    assert stats.no_free_slot == 0


def test_both_prefers_lossless_within_a_directory() -> None:
    mixed = _album("Mixed/Album", 10) + _album("Mixed/Album", 10, ext="mp3", bit_rate=320)
    responses = [_peer("u", *mixed)]

    both, _ = scoring.filter_and_score(responses, FilterOptions(format=FormatFilter.BOTH, track_count=False))
    lossy, _ = scoring.filter_and_score(responses, FilterOptions(format=FormatFilter.LOSSY, track_count=False))

    assert both[0].format == "FLAC"
    assert both[0].file_count == 10
    assert lossy[0].format == "MP3"
    assert lossy[0].bit_rate == 320


def test_both_falls_back_to_lossy_but_default_does_not() -> None:
    responses = [_peer("mp3", *_album("Mp3/Album", 10, ext="mp3", bit_rate=256))]

    both, _ = scoring.filter_and_score(responses, FilterOptions(format=FormatFilter.BOTH, track_count=False))
    default, stats = scoring.filter_and_score(responses, FilterOptions(track_count=False))

    assert [c.format for c in both] == ["MP3"]
    assert default == []
    assert stats.wrong_format == 1


def test_only_audio_files_are_kept_in_a_candidate() -> None:
    files = _album("Peer/Album", 4) + (PeerFile(filename="Peer/Album/cover.jpg", size=50000),)

    candidates, _ = scoring.filter_and_score([_peer("u", *files)], FilterOptions(track_count=False))

    assert candidates[0].file_count == 4
    assert all(f.filename.endswith(".flac") for f in candidates[0].files)


def test_expected_tracks_derived_when_three_directories_agree() -> None:
    responses = [
        _peer("a", *_album("A/Album", 17)),
        _peer("b", *_album("B/Album", 17)),
        _peer("c", *_album("C/Album", 17)),
        _peer("d", *_album("D/Album", 19)),
    ]

    candidates, stats = scoring.filter_and_score(responses, FilterOptions())

    assert stats.expected_tracks == 17
    assert [c.username for c in candidates] == ["a", "b", "c"]
    assert stats.wrong_track_count == 1


def test_no_track_filter_without_three_way_agreement() -> None:
    responses = [
        _peer("a", *_album("A/Album", 17)),
        _peer("b", *_album("B/Album", 17)),
        _peer("d", *_album("D/Album", 19)),
    ]

    candidates, stats = scoring.filter_and_score(responses, FilterOptions())

    assert stats.expected_tracks == 0
    assert len(candidates) == 3


def test_year_match_ranks_first_then_speed() -> None:
    responses = [
        _peer("fast", *_album("Fast/Abbey Road [2019 Remaster]", 17), speed=9000),
        _peer("slow", *_album("Slow/Abbey Road (1969)", 17), speed=10),
        _peer("mid", *_album("Mid/Abbey Road", 17), speed=500),
        _peer("slowest", *_album("Z/1969 - Abbey Road", 17), speed=5),
    ]

    candidates, _ = scoring.filter_and_score(responses, FilterOptions(release_year="1969", expected_tracks=17))

    assert [c.username for c in candidates] == ["slow", "slowest", "fast", "mid"]
    assert [c.year_match for c in candidates] == [True, True, False, False]


def test_scoring_is_repeatable_and_leaves_input_alone() -> None:
    responses = [
        _peer("a", *_album("A/Album", 10), speed=5),
        _peer("b", *_album("B/Album", 10, ext="mp3"), speed=50),
    ]
    snapshot = list(responses)
    options = FilterOptions(format=FormatFilter.BOTH, track_count=False)

    first = scoring.filter_and_score(responses, options)
    second = scoring.filter_and_score(responses, options)

    assert first == second
    assert responses == snapshot


def test_candidate_totals() -> None:
    candidates, _ = scoring.filter_and_score([_peer("a", *_album("A/Album", 3))], FilterOptions(track_count=False))

    assert candidates[0].total_size == 1001 + 1002 + 1003
    assert scoring.most_common_bit_rate(()) == 0
