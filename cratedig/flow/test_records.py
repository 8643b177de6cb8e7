from __future__ import annotations

from pathlib import Path

from cratedig.catalog.types import Release, ReleaseDetails, ReleaseGroup, Track
from cratedig.flow import records


def _record(**overrides) -> records.QueuedRecord:
    group = ReleaseGroup(id="rg1", title="Abbey Road", primary_type="Album", first_release="1969-09-26")
    fields = dict(
        release_group_id="rg1",
        release_id="r1",
        artist_name="The Beatles",
        album_title="Abbey Road",
        release_year="1969-09-26",
        source_username="peer",
        source_directory="Music\\Abbey Road",
        files=(records.FileEntry("Music\\Abbey Road\\01.flac", 123),),
        release_group=group,
        release_details=ReleaseDetails(
            release=Release(id="r1", title="Abbey Road", track_count=1),
            tracks=(Track(position=1, title="Come Together", length_ms=259000),),
        ),
    )
    fields.update(overrides)
    return records.QueuedRecord(**fields)


def test_next_record_path_starts_at_one(tmp_path: Path) -> None:
    assert records.next_record_path(tmp_path / "missing") == tmp_path / "missing" / "queued1.json"
    assert records.next_record_path(tmp_path) == tmp_path / "queued1.json"


def test_next_record_path_skips_past_highest(tmp_path: Path) -> None:
    (tmp_path / "queued1.json").write_text("{}", encoding="utf-8")
    (tmp_path / "queued7.json").write_text("{}", encoding="utf-8")
    (tmp_path / "queued.json").write_text("{}", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")

    assert records.next_record_path(tmp_path) == tmp_path / "queued8.json"


def test_write_record_creates_directory_and_numbered_files(tmp_path: Path) -> None:
    out = tmp_path / "records"

    first = records.write_record(_record(), out)
    second = records.write_record(_record(source_username="other"), out)

    assert first.name == "queued1.json"
    assert second.name == "queued2.json"
    assert records.load_record(second)["source_username"] == "other"


def test_written_record_keeps_field_names_and_nested_metadata(tmp_path: Path) -> None:
    path = records.write_record(_record(), tmp_path)
    data = records.load_record(path)

    assert data["release_group_id"] == "rg1"
    assert data["release_id"] == "r1"
    assert data["artist_name"] == "The Beatles"
    assert data["album_title"] == "Abbey Road"
    assert data["release_year"] == "1969-09-26"
    assert data["source_directory"] == "Music\\Abbey Road"
    assert data["files"] == [{"filename": "Music\\Abbey Road\\01.flac", "size": 123}]
    assert data["release_group"]["primary_type"] == "Album"
    assert data["release_details"]["tracks"][0]["title"] == "Come Together"
    assert path.read_text(encoding="utf-8").endswith("}\n")


def test_record_without_metadata_serializes_nulls() -> None:
    data = _record(release_group=None, release_details=None).to_dict()

    assert data["release_group"] is None
    assert data["release_details"] is None
