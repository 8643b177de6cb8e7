"""
Rank peer directories from slskd search responses.

Scoring always starts again from the raw responses: nothing here mutates its
input, so re-running with the same options gives the same candidates and stats.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from cratedig.source.types import PeerFile, PeerResponse


class FormatFilter(str, Enum):
    BOTH = "both"
    LOSSLESS = "lossless"
    LOSSY = "lossy"

    def next(self) -> "FormatFilter":
        """both -> lossless -> lossy -> both"""
        order = (FormatFilter.BOTH, FormatFilter.LOSSLESS, FormatFilter.LOSSY)
        return order[(order.index(self) + 1) % len(order)]

    @property
    def label(self) -> str:
        return {"both": "Both", "lossless": "Lossless", "lossy": "Lossy"}[self.value]


LOSSLESS_EXTENSIONS = {
    "flac": "FLAC",
    "wav": "WAV",
    "aiff": "AIFF",
    "aif": "AIFF",
    "alac": "ALAC",
    "ape": "APE",
    "wv": "WavPack",
    "tta": "TTA",
}

LOSSY_EXTENSIONS = {
    "mp3": "MP3",
    "m4a": "AAC",
    "aac": "AAC",
    "ogg": "OGG",
    "opus": "Opus",
    "wma": "WMA",
    "mpc": "Musepack",
}

# A fallback track count needs at least this many directories agreeing on it.
MIN_TRACK_COUNT_AGREEMENT = 3


@dataclass(frozen=True)
class FilterOptions:
    format: FormatFilter = FormatFilter.LOSSLESS
    no_slot: bool = True
    track_count: bool = True
    expected_tracks: int = 0  # 0 = derive from the candidates
    release_year: str = ""


@dataclass(frozen=True)
class FilterStats:
    no_free_slot: int = 0
    no_audio_files: int = 0
    wrong_format: int = 0
    wrong_track_count: int = 0
    total_responses: int = 0
    total_dirs: int = 0
    expected_tracks: int = 0

    @property
    def filtered_out(self) -> int:
        return self.no_free_slot + self.no_audio_files + self.wrong_format + self.wrong_track_count


@dataclass(frozen=True)
class CandidateSource:
    """One peer directory that survived filtering."""
    username: str
    directory: str
    files: Tuple[PeerFile, ...]
    format: str
    bit_rate: int
    upload_speed: int
    has_free_slot: bool = True
    year_match: bool = False

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def rank(self) -> Tuple[int, int]:
        """Sort key; smaller ranks first."""
        return (0 if self.year_match else 1, -self.upload_speed)


@dataclass(frozen=True)
class _Directory:
    username: str
    directory: str
    files: Tuple[PeerFile, ...]
    has_free_slot: bool
    upload_speed: int


@dataclass
class _Counters:
    no_free_slot: int = 0
    no_audio_files: int = 0
    wrong_format: int = 0
    wrong_track_count: int = 0


def parent_directory(path: str) -> str:
    """Parent of a remote path; peers send both ``/`` and ``\\`` separators."""
    last_sep = max(path.rfind("/"), path.rfind("\\"))
    if last_sep <= 0:
        return "."
    return path[:last_sep]


def file_extension(f: PeerFile) -> str:
    ext = f.extension.lower().lstrip(".")
    if ext:
        return ext
    idx = f.filename.rfind(".")
    if idx != -1:
        return f.filename[idx + 1:].lower()
    return ""


def _group_by_directory(files: Iterable[PeerFile]) -> dict[str, list[PeerFile]]:
    groups: dict[str, list[PeerFile]] = {}
    for f in files:
        groups.setdefault(parent_directory(f.filename), []).append(f)
    return groups


def _flatten(responses: Sequence[PeerResponse]) -> list[_Directory]:
    dirs: list[_Directory] = []
    for response in responses:
        for directory, files in _group_by_directory(response.files).items():
            dirs.append(
                _Directory(
                    username=response.username,
                    directory=directory,
                    files=tuple(files),
                    has_free_slot=response.has_free_upload_slot,
                    upload_speed=response.upload_speed,
                )
            )
    return dirs


def has_audio(files: Iterable[PeerFile]) -> bool:
    for f in files:
        ext = file_extension(f)
        if ext in LOSSLESS_EXTENSIONS or ext in LOSSY_EXTENSIONS:
            return True
    return False


def _most_common(values: Iterable) -> Optional[object]:
    # Counter.most_common is stable, so ties resolve to the first value seen.
    ranked = Counter(values).most_common(1)
    return ranked[0][0] if ranked else None


def _match_extensions(files: Iterable[PeerFile], table: dict[str, str]) -> tuple[list[PeerFile], str]:
    matched: list[PeerFile] = []
    names: list[str] = []
    for f in files:
        name = table.get(file_extension(f))
        if name:
            matched.append(f)
            names.append(name)
    return matched, _most_common(names) or ""


def extract_audio(files: Sequence[PeerFile], fmt: FormatFilter) -> tuple[list[PeerFile], str]:
    """Audio subset allowed by ``fmt`` plus its display label. Both prefers lossless."""
    if fmt in (FormatFilter.LOSSLESS, FormatFilter.BOTH):
        lossless, label = _match_extensions(files, LOSSLESS_EXTENSIONS)
        if lossless or fmt is FormatFilter.LOSSLESS:
            return lossless, label
    return _match_extensions(files, LOSSY_EXTENSIONS)


def most_common_bit_rate(files: Iterable[PeerFile]) -> int:
    """Plurality bit rate, ignoring files that report none."""
    return _most_common(f.bit_rate for f in files if f.bit_rate > 0) or 0


def find_expected_track_count(candidates: Sequence[CandidateSource]) -> int:
    """Most frequent file count when at least three directories share it, else 0."""
    if not candidates:
        return 0
    count, freq = Counter(c.file_count for c in candidates).most_common(1)[0]
    if freq >= MIN_TRACK_COUNT_AGREEMENT:
        return count
    return 0


def filter_and_score(
    responses: Sequence[PeerResponse],
    options: FilterOptions,
) -> tuple[list[CandidateSource], FilterStats]:
    """Turn raw peer responses into ranked candidates and the counts of what was dropped."""
    directories = _flatten(responses)
    counters = _Counters()
    candidates: list[CandidateSource] = []

    for d in directories:
        if options.no_slot and not d.has_free_slot:
            counters.no_free_slot += 1
            continue
        if not has_audio(d.files):
            counters.no_audio_files += 1
            continue
        audio, label = extract_audio(d.files, options.format)
        if not audio:
            counters.wrong_format += 1
            continue
        candidates.append(
            CandidateSource(
                username=d.username,
                directory=d.directory,
                files=tuple(audio),
                format=label,
                bit_rate=most_common_bit_rate(audio),
                upload_speed=d.upload_speed,
                has_free_slot=d.has_free_slot,
            )
        )

    expected = options.expected_tracks or find_expected_track_count(candidates)

    results: list[CandidateSource] = []
    for c in candidates:
        if options.track_count and expected > 0 and c.file_count != expected:
            counters.wrong_track_count += 1
            continue
        # Plain substring test on the whole path.
        year_match = bool(options.release_year) and options.release_year in c.directory
        results.append(replace(c, year_match=year_match) if year_match else c)

    results.sort(key=lambda c: c.rank)

    stats = FilterStats(
        no_free_slot=counters.no_free_slot,
        no_audio_files=counters.no_audio_files,
        wrong_format=counters.wrong_format,
        wrong_track_count=counters.wrong_track_count,
        total_responses=len(responses),
        total_dirs=len(directories),
        expected_tracks=expected,
    )
    return results, stats
