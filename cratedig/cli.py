#!/usr/bin/env python3
"""
cli.py - Entry point for CRATEDIG
Find an album on MusicBrainz, pick a Soulseek source, queue it in slskd.
"""

import argparse
import asyncio
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.markup import escape

from cratedig import logger
from cratedig.__version__ import __version__
from cratedig.api_verification import verify_services
from cratedig.catalog.client import MusicBrainzClient
from cratedig.config import CratedigConfig, load_config, resolve_config_path
from cratedig.exceptions import CratedigError
from cratedig.flow.events import Intent, IntentKind
from cratedig.flow.orchestrator import FlowSnapshot, Orchestrator
from cratedig.flow.phases import Phase
from cratedig.flow.records import QueuedRecord, write_record
from cratedig.flow.runtime import FlowRuntime, OperationRunner
from cratedig.flow.session import FilterConfig
from cratedig.logger import CratedigLogger
from cratedig.source.client import SlskdClient
from cratedig.source.poller import PollSettings

console = Console()
_CLI_SESSION_START_MONOTONIC = time.monotonic()

# Single-key commands accepted at the results prompts.
KEY_INTENTS: dict[str, IntentKind] = {
    "": IntentKind.CONFIRM,
    "b": IntentKind.BACK,
    "q": IntentKind.CANCEL,
    "k": IntentKind.UP,
    "j": IntentKind.DOWN,
    "g": IntentKind.HOME,
    "G": IntentKind.END,
    "f": IntentKind.CYCLE_FORMAT,
    "s": IntentKind.TOGGLE_SLOT,
    "t": IntentKind.TOGGLE_TRACK_COUNT,
    "a": IntentKind.TOGGLE_ALBUMS_ONLY,
    "d": IntentKind.TOGGLE_DEDUP,
}

# While a fetch or poll is running only these are honoured.
LOADING_KEYS: dict[str, IntentKind] = {
    "b": IntentKind.BACK,
    "q": IntentKind.CANCEL,
}
LOADING_HINT = "Working... b back  q quit"

PHASE_HINTS: dict[Phase, str] = {
    Phase.ARTIST_RESULTS: "[N] pick  j/k move  Enter select  b back  q quit",
    Phase.RELEASE_GROUP_RESULTS: "[N] pick  Enter select  a albums-only  b back  q quit",
    Phase.RELEASE_RESULTS: "[N] pick  Enter select  d dedup  b back  q quit",
    Phase.SOURCE_RESULTS: "[N] pick  Enter queue  f format  s slot  t tracks  b back  q quit",
}


def _ui_info(message: str) -> None:
    console.print(f"[cyan][INFO][/cyan] {message}")


def _ui_error(message: str) -> None:
    console.print(f"[red][ERROR][/red] {message}")


def _ui_prompt(label: str, default: str | None = None) -> str:
    if default is None:
        return Prompt.ask(label)
    return Prompt.ask(label, default=default)


def _reset_cli_session_timer() -> None:
    global _CLI_SESSION_START_MONOTONIC
    _CLI_SESSION_START_MONOTONIC = time.monotonic()


def _format_elapsed_runtime(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3_600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3_600:.1f}h"


def _ui_goodbye_with_elapsed() -> None:
    elapsed = max(0.0, time.monotonic() - _CLI_SESSION_START_MONOTONIC)
    _ui_info(f"Goodbye! Elapsed {_format_elapsed_runtime(elapsed)}")


def format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def parse_command(raw: str, snapshot: FlowSnapshot) -> list[Intent]:
    """Translate one line of user input into intents for the current phase."""
    if snapshot.phase is Phase.AWAITING_QUERY and not snapshot.transfer_complete:
        text = raw.strip()
        if text == "q":
            return [Intent(IntentKind.CANCEL)]
        return [Intent(IntentKind.CONFIRM, text=text)]

    text = raw.strip()
    if snapshot.phase.is_loading:
        kind = LOADING_KEYS.get(text.lower())
        return [Intent(kind)] if kind is not None else []
    if text.isdigit():
        row = int(text)
        if not 1 <= row <= len(snapshot.items):
            return []
        return [Intent(IntentKind.HOME)] + [Intent(IntentKind.DOWN)] * (row - 1) + [Intent(IntentKind.CONFIRM)]
    kind = KEY_INTENTS.get(text) or KEY_INTENTS.get(text.lower())
    if kind is None:
        return []
    return [Intent(kind)]


class FlowView:
    """Renders snapshots and lets the input loop wait for the next one."""

    def __init__(self) -> None:
        self._changed = asyncio.Event()
        self._last_rendered: Optional[tuple] = None
        self.version = 0  # one per handled message

    def on_change(self, snapshot: FlowSnapshot) -> None:
        self.version += 1
        self._changed.set()
        log = logger.get_logger()
        if snapshot.phase.is_loading:
            if snapshot.status:
                log.status(snapshot.status)
            return

        key = (
            snapshot.phase,
            snapshot.cursor,
            id_tuple(snapshot.items),
            tuple(vars(snapshot.filters).values()),
            snapshot.status,
            snapshot.error,
        )
        if key == self._last_rendered:
            return
        self._last_rendered = key
        render_snapshot(snapshot)

    async def wait_for_version(self, target: int) -> None:
        while self.version < target:
            self._changed.clear()
            await self._changed.wait()


def id_tuple(items: tuple) -> tuple:
    return tuple(id(item) for item in items)


def render_snapshot(snapshot: FlowSnapshot) -> None:
    log = logger.get_logger()
    if snapshot.error:
        log.error(snapshot.error)
    table = _results_table(snapshot)
    if table is not None:
        console.print(table)
    if snapshot.phase is Phase.SOURCE_RESULTS:
        console.print(_filter_line(snapshot))
    if snapshot.status:
        log.info(snapshot.status)


def _marker(idx: int, cursor: int) -> str:
    return f">{idx + 1}" if idx == cursor else str(idx + 1)


def _results_table(snapshot: FlowSnapshot) -> Optional[Table]:
    phase = snapshot.phase
    if phase is Phase.ARTIST_RESULTS:
        table = Table(title=f"Artists matching \"{escape(snapshot.query)}\"")
        for col in ("#", "Name", "Type", "Country", "Disambiguation", "Score"):
            table.add_column(col)
        for idx, artist in enumerate(snapshot.items):
            table.add_row(
                _marker(idx, snapshot.cursor),
                escape(artist.name),
                artist.type,
                artist.country,
                escape(artist.disambiguation),
                str(artist.score),
            )
        return table
    if phase is Phase.RELEASE_GROUP_RESULTS:
        artist = snapshot.selected_artist.name if snapshot.selected_artist else ""
        albums_only = "on" if snapshot.filters.albums_only else "off"
        table = Table(title=f"{escape(artist)} - release groups (albums only: {albums_only})")
        for col in ("#", "Year", "Title", "Type"):
            table.add_column(col)
        for idx, group in enumerate(snapshot.items):
            kind = " + ".join((group.primary_type,) + group.secondary_types) if group.primary_type else ""
            table.add_row(_marker(idx, snapshot.cursor), group.year, escape(group.title), kind)
        return table
    if phase is Phase.RELEASE_RESULTS:
        title = snapshot.selected_release_group.title if snapshot.selected_release_group else ""
        dedup = "on" if snapshot.filters.dedup else "off"
        tracks = snapshot.expected_tracks or "?"
        table = Table(title=f"{escape(title)} - releases (dedup: {dedup}, tracks: {tracks})")
        for col in ("#", "Date", "Country", "Tracks", "Discs", "Formats", "Status"):
            table.add_column(col)
        for idx, release in enumerate(snapshot.items):
            table.add_row(
                _marker(idx, snapshot.cursor),
                release.date,
                release.country,
                str(release.track_count),
                str(release.disc_count),
                escape(release.formats),
                release.status,
            )
        return table
    if phase is Phase.SOURCE_RESULTS:
        table = Table(title="Soulseek sources")
        for col in ("#", "User", "Format", "Bitrate", "Files", "Size", "Speed", "Directory"):
            table.add_column(col)
        for idx, source in enumerate(snapshot.items):
            table.add_row(
                _marker(idx, snapshot.cursor),
                escape(source.username),
                source.format,
                f"{source.bit_rate} kbps" if source.bit_rate else "",
                str(source.file_count),
                format_size(source.total_size),
                f"{format_size(source.upload_speed)}/s",
                ("* " if source.year_match else "") + escape(source.directory),
            )
        return table
    return None


def _filter_line(snapshot: FlowSnapshot) -> str:
    f = snapshot.filters
    stats = snapshot.filter_stats
    return (
        f"Format: {f.format.label}  Slot: {'on' if f.no_slot else 'off'}  "
        f"Tracks: {'on' if f.track_count else 'off'} ({stats.expected_tracks or '?'})  |  "
        f"{stats.total_responses} users, {stats.total_dirs} dirs; filtered: "
        f"{stats.no_free_slot} no slot, {stats.no_audio_files} no audio, "
        f"{stats.wrong_format} format, {stats.wrong_track_count} track count"
    )


def _prompt_label(snapshot: FlowSnapshot) -> str:
    if snapshot.transfer_complete:
        return "Press Enter to close"
    if snapshot.phase.is_loading:
        return LOADING_HINT
    if snapshot.phase is Phase.AWAITING_QUERY:
        return "Artist (q to quit)"
    return PHASE_HINTS.get(snapshot.phase, "")


class PromptReader:
    """Reads one answer at a time on a daemon thread.

    A pending answer outlives phase changes, so input typed while a phase is
    loading is still delivered. A blocked terminal read cannot be cancelled,
    hence the daemon thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._pending: Optional[asyncio.Future] = None

    def ask(self, label: str) -> asyncio.Future:
        if self._pending is None:
            self._pending = self._loop.create_future()
            threading.Thread(target=self._read, args=(label,), daemon=True).start()
        return self._pending

    def _read(self, label: str) -> None:
        try:
            answer, failure = _ui_prompt(label, ""), None
        except Exception as exc:
            answer, failure = "", exc
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._settle, answer, failure)

    def _settle(self, answer: str, failure: Optional[Exception]) -> None:
        future, self._pending = self._pending, None
        if future is None or future.done():
            return
        if failure is not None:
            future.set_exception(failure)
        else:
            future.set_result(answer)


async def _input_loop(runtime: FlowRuntime, view: FlowView, reader: Optional[PromptReader] = None) -> None:
    reader = reader or PromptReader(asyncio.get_running_loop())
    while not runtime.orchestrator.session.closed:
        snapshot = runtime.orchestrator.snapshot()
        answer = reader.ask(_prompt_label(snapshot))
        if snapshot.phase.is_loading:
            changed = asyncio.ensure_future(view.wait_for_version(view.version + 1))
            await asyncio.wait({answer, changed}, return_when=asyncio.FIRST_COMPLETED)
            if not answer.done():
                settled = runtime.orchestrator.snapshot()
                if not settled.phase.is_loading:
                    console.print(f"[dim]{_prompt_label(settled)}[/dim]")
                continue
            changed.cancel()
        raw = await answer
        # Answers typed during loading apply to whatever phase is current now.
        intents = parse_command(raw, runtime.orchestrator.snapshot())
        if not intents:
            continue
        target = view.version + len(intents)
        for intent in intents:
            runtime.submit(intent)
        await view.wait_for_version(target)


async def run_flow(
    config: CratedigConfig,
    records_dir: Path,
    initial_query: Optional[str] = None,
) -> list[Path]:
    """Run one interactive acquisition flow; returns the record files written."""
    catalog = MusicBrainzClient(config.catalog)
    source = SlskdClient(config.source)
    poll_settings = PollSettings.from_config(config.source)
    orchestrator = Orchestrator(
        filters=FilterConfig.from_defaults(config.filters),
        poll_settings=poll_settings,
        delete_searches=config.source.delete_searches,
    )
    written: list[Path] = []

    def _persist(record: QueuedRecord) -> None:
        path = write_record(record, records_dir)
        written.append(path)
        logger.get_logger().info(f"Saved queue record to {path}")

    view = FlowView()
    runtime = FlowRuntime(
        orchestrator,
        OperationRunner(catalog, source, poll_settings),
        on_change=view.on_change,
        on_record=_persist,
    )
    if initial_query:
        runtime.submit(Intent(IntentKind.CONFIRM, text=initial_query))

    runtime_task = asyncio.create_task(runtime.run())
    try:
        if initial_query:
            # Initial render plus the submitted query.
            await view.wait_for_version(2)
        await _input_loop(runtime, view)
        await runtime_task
    finally:
        if not runtime_task.done():
            runtime_task.cancel()
            await asyncio.gather(runtime_task, return_exceptions=True)
        await catalog.close()
        await source.close()
    return written


def show_help(parser: argparse.ArgumentParser) -> None:
    print(f"CRATEDIG v{__version__} - Find an album, pick a Soulseek source, queue it")
    print()
    parser.print_help()


def _build_logger(config: CratedigConfig, debug: bool) -> CratedigLogger:
    log_file = None
    if config.output.log_dir:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        log_file = config.output.log_dir / f"cratedig-{stamp}.log"
    return CratedigLogger(log_file=log_file, debug=debug)


def main():
    """Entry point"""
    _reset_cli_session_timer()
    parser = argparse.ArgumentParser(add_help=False)
    for args, kwargs in (
        (("-h", "--help"), {"action": "store_true", "help": "Show help"}),
        (("--verify",), {"action": "store_true", "help": "Verify MusicBrainz and slskd access and exit"}),
        (("-c", "--config"), {"metavar": "PATH", "help": "Path to config.toml (file or directory)"}),
        (("-o", "--output"), {"metavar": "DIR", "help": "Directory for queued-transfer records (default: ./output)"}),
        (("-d", "--debug"), {"action": "store_true", "help": "Debug mode with API calls, JSON responses, timestamps"}),
    ):
        parser.add_argument(*args, **kwargs)
    parser.add_argument("query", nargs="?", help="Artist to search for straight away")

    try:
        args = parser.parse_args()
        if args.help:
            show_help(parser)
            sys.exit(0)

        config = load_config(resolve_config_path(args.config))
        _ui_info(f"✓ Read configuration file \"{config.config_path}\"... ok!")

        if args.verify:
            result = asyncio.run(verify_services(config))
            sys.exit(0 if result else 1)

        if not config.has_source_config():
            _ui_error("slskd is not configured: set [source] url and api_key in config.toml")
            sys.exit(1)

        records_dir = Path(args.output).expanduser() if args.output else config.output.records_dir
        console.print(Panel("[bold blue]CRATEDIG[/bold blue]\nMusicBrainz -> Soulseek -> slskd"))
        with _build_logger(config, args.debug) as log:
            logger.set_logger(log)
            written = asyncio.run(run_flow(config, records_dir, args.query))
        for path in written:
            _ui_info(f"Queued transfer recorded in {path}")
        _ui_goodbye_with_elapsed()
        sys.exit(0)
    except KeyboardInterrupt:
        _ui_goodbye_with_elapsed()
        sys.exit(0)
    except CratedigError as e:
        _ui_error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
