"""Rendering contracts for the plain-text CLI renderer."""

from __future__ import annotations

import pytest

from netsource.persistence import PipelineReport
from netsource.persistence.migrations import MigrationRecord, SkippedArtifact
from netsource.ui.render import CLIRenderer, create_renderer, render_pipeline_report


def test_table_aligns_columns(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = CLIRenderer(no_color=True)

    renderer.table(
        ["VERSION", "NAME"],
        [["1", "001_initial_schema.sql"], ["10", "10_x.sql"]],
        title="Applied migrations:",
    )

    assert capsys.readouterr().out.splitlines() == [
        "",
        "Applied migrations:",
        "  VERSION  NAME",
        "  -------  ----------------------",
        "  1        001_initial_schema.sql",
        "  10       10_x.sql",
    ]


def test_table_prints_empty_marker(capsys: pytest.CaptureFixture[str]) -> None:
    CLIRenderer(no_color=True).table(["VERSION"], [], empty="(none)")

    assert capsys.readouterr().out == "  (none)\n"


def test_status_markers_are_plain_without_color(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = create_renderer(no_color=True)

    renderer.ok("database connected")
    renderer.fail("database missing")

    assert capsys.readouterr().out.splitlines() == [
        "  OK  database connected",
        "  FAIL  database missing",
    ]


def test_no_color_env_disables_styling(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    CLIRenderer().ok("fine")

    assert "\033[" not in capsys.readouterr().out


def test_warnings_go_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = CLIRenderer(no_color=True)

    renderer.warning("skipped notes.sql")
    renderer.next_steps(["netsource init"])

    captured = capsys.readouterr()
    assert captured.err == "  Warning: skipped notes.sql\n"
    assert captured.out.splitlines() == ["", "Next steps:", "  $ netsource init"]


def test_pipeline_report_lists_applied_skipped_and_seeded(
    capsys: pytest.CaptureFixture[str],
) -> None:
    report = PipelineReport(
        db_path="/srv/store.db",
        applied=(
            MigrationRecord(version=2, name="2_index.sql", applied_at="2026-10-18T00:00:00Z"),
        ),
        skipped=(SkippedArtifact(filename="notes.sql", reason="no version prefix"),),
        seeded={"groups": 3, "network_services": 0},
    )

    render_pipeline_report(CLIRenderer(no_color=True), report)

    captured = capsys.readouterr()
    assert captured.out.splitlines() == [
        "",
        "Applied migrations:",
        "  VERSION  NAME",
        "  -------  -----------",
        "  2        2_index.sql",
        "",
        "Seeded:",
        "  - groups: 3 row(s)",
    ]
    assert captured.err == "  Warning: skipped notes.sql: no version prefix\n"


def test_readonly_report_skips_tables(capsys: pytest.CaptureFixture[str]) -> None:
    render_pipeline_report(
        CLIRenderer(no_color=True), PipelineReport(db_path="/srv/store.db", readonly=True)
    )

    assert capsys.readouterr().out == "Read-only store: ledger verified, nothing applied.\n"
