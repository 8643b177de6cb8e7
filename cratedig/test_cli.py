from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from cratedig import cli
from cratedig.catalog.types import Artist
from cratedig.flow.events import Intent, IntentKind
from cratedig.flow.orchestrator import Orchestrator
from cratedig.flow.phases import Phase


def _snapshot_in(phase: Phase, transfer_complete: bool = False):
    orch = Orchestrator()
    orch.session.phase = phase
    orch.session.transfer_complete = transfer_complete
    return orch.snapshot()


def test_ui_info_and_error_emit_prefixed_messages(monkeypatch: pytest.MonkeyPatch) -> None:
    lines: list[str] = []
    monkeypatch.setattr(cli.console, "print", lambda msg, *_args, **_kwargs: lines.append(str(msg)))

    cli._ui_info("hello")
    cli._ui_error("boom")

    assert lines == ["[cyan][INFO][/cyan] hello", "[red][ERROR][/red] boom"]


def test_ui_prompt_with_and_without_default(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, str | None]] = []

    def _fake_ask(label: str, default: str | None = None) -> str:
        calls.append((label, default))
        return "answer"

    monkeypatch.setattr(cli.Prompt, "ask", _fake_ask)

    assert cli._ui_prompt("Label") == "answer"
    assert cli._ui_prompt("Label2", default="") == "answer"
    assert calls == [("Label", None), ("Label2", "")]


def test_format_elapsed_runtime_units() -> None:
    assert cli._format_elapsed_runtime(12.34) == "12.3s"
    assert cli._format_elapsed_runtime(90) == "1.5m"
    assert cli._format_elapsed_runtime(5400) == "1.5h"


def test_format_size() -> None:
    assert cli.format_size(512) == "512 B"
    assert cli.format_size(2048) == "2.0 KB"
    assert cli.format_size(5 * 1024 * 1024) == "5.0 MB"
    assert cli.format_size(3 * 1024 ** 4) == "3072.0 GB"


def test_query_prompt_takes_text_verbatim() -> None:
    snap = _snapshot_in(Phase.AWAITING_QUERY)

    assert cli.parse_command("  Abbey Road ", snap) == [Intent(IntentKind.CONFIRM, "Abbey Road")]
    assert cli.parse_command("q", snap) == [Intent(IntentKind.CANCEL)]
    # digits and single letters are artist names here, not commands
    assert cli.parse_command("2", snap) == [Intent(IntentKind.CONFIRM, "2")]


def test_results_prompt_maps_keys() -> None:
    snap = _snapshot_in(Phase.SOURCE_RESULTS)

    assert cli.parse_command("", snap) == [Intent(IntentKind.CONFIRM)]
    assert cli.parse_command("f", snap) == [Intent(IntentKind.CYCLE_FORMAT)]
    assert cli.parse_command("G", snap) == [Intent(IntentKind.END)]
    assert cli.parse_command("B", snap) == [Intent(IntentKind.BACK)]
    assert cli.parse_command("zz", snap) == []


def _artists_snapshot(count: int):
    orch = Orchestrator()
    orch.session.phase = Phase.ARTIST_RESULTS
    orch.session.artists = [Artist(id=f"a{i}", name=f"Artist {i}") for i in range(1, count + 1)]
    return orch


def test_row_number_expands_to_cursor_moves() -> None:
    snap = _artists_snapshot(3).snapshot()

    assert cli.parse_command("3", snap) == [
        Intent(IntentKind.HOME),
        Intent(IntentKind.DOWN),
        Intent(IntentKind.DOWN),
        Intent(IntentKind.CONFIRM),
    ]
    assert cli.parse_command("0", snap) == []


def test_row_number_past_the_end_selects_nothing() -> None:
    orch = _artists_snapshot(3)

    intents = cli.parse_command("9", orch.snapshot())
    effects = [effect for intent in intents for effect in orch.handle(intent)]

    assert intents == []
    assert effects == []
    assert orch.session.phase is Phase.ARTIST_RESULTS


def test_loading_prompt_only_takes_back_and_quit() -> None:
    snap = _snapshot_in(Phase.SOURCE_SEARCHING)

    assert cli.parse_command("b", snap) == [Intent(IntentKind.BACK)]
    assert cli.parse_command("Q", snap) == [Intent(IntentKind.CANCEL)]
    assert cli.parse_command("2", snap) == []
    assert cli.parse_command("", snap) == []
    assert cli._prompt_label(snap) == cli.LOADING_HINT


class _ScriptedReader:
    def __init__(self, *answers: str) -> None:
        self._answers = list(answers)
        self.labels: list[str] = []

    def ask(self, label: str) -> asyncio.Future:
        self.labels.append(label)
        answer = asyncio.get_running_loop().create_future()
        answer.set_result(self._answers.pop(0))
        return answer


class _InlineRuntime:
    """Handles each intent on submit and reports the change straight away."""

    def __init__(self, orchestrator: Orchestrator, view: cli.FlowView) -> None:
        self.orchestrator = orchestrator
        self.view = view
        self.submitted: list[Intent] = []

    def submit(self, intent: Intent) -> None:
        self.submitted.append(intent)
        self.orchestrator.handle(intent)
        self.view.on_change(self.orchestrator.snapshot())


def test_input_loop_backs_out_of_a_loading_phase(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "render_snapshot", lambda _snap: None)

    async def _scenario() -> tuple[list[Intent], list[str], Phase]:
        orch = Orchestrator()
        orch.handle(Intent(IntentKind.CONFIRM, "Beatles"))
        view = cli.FlowView()
        runtime = _InlineRuntime(orch, view)
        reader = _ScriptedReader("b", "q")
        await asyncio.wait_for(cli._input_loop(runtime, view, reader), timeout=5)
        return runtime.submitted, reader.labels, orch.session.phase

    submitted, labels, phase = asyncio.run(_scenario())

    assert submitted == [Intent(IntentKind.BACK), Intent(IntentKind.CANCEL)]
    assert labels == [cli.LOADING_HINT, "Artist (q to quit)"]
    assert phase is Phase.AWAITING_QUERY


def test_enter_closes_after_transfer() -> None:
    snap = _snapshot_in(Phase.AWAITING_QUERY, transfer_complete=True)

    assert cli.parse_command("", snap) == [Intent(IntentKind.CONFIRM)]
    assert cli._prompt_label(snap) == "Press Enter to close"


def test_flow_view_counts_versions_and_skips_duplicate_renders(monkeypatch: pytest.MonkeyPatch) -> None:
    rendered: list[Phase] = []
    monkeypatch.setattr(cli, "render_snapshot", lambda snap: rendered.append(snap.phase))

    async def _scenario() -> int:
        view = cli.FlowView()
        orch = Orchestrator()
        orch.session.phase = Phase.ARTIST_RESULTS
        orch.session.artists = [Artist(id="a", name="A"), Artist(id="b", name="B")]
        view.on_change(orch.snapshot())
        view.on_change(orch.snapshot())
        orch.session.artist_cursor = 1
        view.on_change(orch.snapshot())
        await view.wait_for_version(3)
        return view.version

    assert asyncio.run(_scenario()) == 3
    assert rendered == [Phase.ARTIST_RESULTS, Phase.ARTIST_RESULTS]


def test_flow_view_shows_loading_status_inline(monkeypatch: pytest.MonkeyPatch) -> None:
    statuses: list[str] = []

    class _Log:
        def status(self, msg: str) -> None:
            statuses.append(msg)

    monkeypatch.setattr(cli.logger, "get_logger", lambda: _Log())
    monkeypatch.setattr(cli, "render_snapshot", lambda _snap: pytest.fail("loading phases are not rendered"))

    async def _scenario() -> None:
        view = cli.FlowView()
        orch = Orchestrator()
        orch.session.phase = Phase.SOURCE_SEARCHING
        orch.session.status = "Collecting results... (4 users responded)"
        view.on_change(orch.snapshot())

    asyncio.run(_scenario())

    assert statuses == ["Collecting results... (4 users responded)"]


def test_main_help_exits_zero(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture) -> None:
    monkeypatch.setattr(sys, "argv", ["cratedig", "--help"])

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 0
    assert "CRATEDIG" in capsys.readouterr().out


def test_main_refuses_to_run_without_slskd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[catalog]\nuser_agent = "Cratedig/test"\n', encoding="utf-8")
    lines: list[str] = []
    monkeypatch.setattr(cli.console, "print", lambda msg, *_args, **_kwargs: lines.append(str(msg)))
    monkeypatch.setattr(sys, "argv", ["cratedig", "-c", str(config_path)])

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    assert any("slskd is not configured" in line for line in lines)


def test_main_reports_missing_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    lines: list[str] = []
    monkeypatch.setattr(cli.console, "print", lambda msg, *_args, **_kwargs: lines.append(str(msg)))
    monkeypatch.setattr(sys, "argv", ["cratedig", "-c", str(tmp_path / "nope.toml")])

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    assert any("Configuration file not found" in line for line in lines)
