"""
Queued-transfer record: the one artifact a finished flow leaves behind.

Importers read these JSON files to tag the downloaded directory, so the field
names are part of the on-disk contract.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from cratedig.catalog.types import ReleaseDetails, ReleaseGroup

RECORD_PREFIX = "queued"
_RECORD_RE = re.compile(rf"^{RECORD_PREFIX}(\d+)\.json$")


@dataclass(frozen=True)
class FileEntry:
    filename: str
    size: int


@dataclass(frozen=True)
class QueuedRecord:
    release_group_id: str
    release_id: str
    artist_name: str
    album_title: str
    release_year: str  # the release group's first-release date
    source_username: str
    source_directory: str
    files: tuple[FileEntry, ...] = ()
    release_group: Optional[ReleaseGroup] = None
    release_details: Optional[ReleaseDetails] = None

    def to_dict(self) -> dict:
        return asdict(self)


def next_record_path(records_dir: Path) -> Path:
    """First unused ``queuedN.json`` in ``records_dir``."""
    highest = 0
    if records_dir.exists():
        for path in records_dir.iterdir():
            match = _RECORD_RE.match(path.name)
            if match:
                highest = max(highest, int(match.group(1)))
    return records_dir / f"{RECORD_PREFIX}{highest + 1}.json"


def write_record(record: QueuedRecord, records_dir: Path) -> Path:
    records_dir.mkdir(parents=True, exist_ok=True)
    path = next_record_path(records_dir)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    return path


def load_record(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)
