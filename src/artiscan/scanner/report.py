from __future__ import annotations

from typing import Optional

from .outcomes import _describe_category, _outcome_style
from .rich_support import RICH_AVAILABLE, Console, Table, Text, box
from .session import ScanSession
from ..core.artifact import Artifact
from ..errors import error_suggestion


def _render_scan_overview(session: ScanSession, console: Optional["Console"]) -> None:
    """
    Display high-level scan metrics (inventory total, accepted, skipped, time).
    """
    inventory_label = (
        str(session.expected_total) if session.expected_total is not None else "?"
    )
    duration_label = f"{session.duration_seconds:.1f}s"
    outcome = session.outcome_label.upper()
    skipped_parts = [
        f"{_describe_category(category)}={count}"
        for category, count in session.skipped.most_common()
    ]
    skipped_label = str(session.skipped_total)
    if skipped_parts:
        skipped_label = f"{skipped_label} ({', '.join(skipped_parts)})"

    if console is None:
        print(
            f"Overview: outcome={outcome} inventory={inventory_label} "
            f"processed={session.items_processed} accepted={session.accepted} "
            f"skipped={skipped_label} filtered={session.filtered} duration={duration_label}"
        )
        if session.terminal_reason:
            print(f"Reason: {session.terminal_reason}")
        return

    table = Table(
        title="Scan Overview",
        box=box.SIMPLE,
        show_header=False,
        show_lines=False,
        padding=(0, 1),
    )
    table.add_column("Metric", justify="left", style="cyan", no_wrap=True)
    table.add_column("Value", justify="left", style="white")
    table.add_row("Outcome", Text(outcome, style=_outcome_style(outcome)))
    if session.terminal_reason:
        table.add_row("Reason", session.terminal_reason)
    table.add_row("Artifacts in inventory", inventory_label)
    if session.expected_total is None and session.inventory_count_text:
        table.add_row("Count OCR", session.inventory_count_text)
    table.add_row("Items processed", str(session.items_processed))
    table.add_row("Accepted", str(session.accepted))
    table.add_row("Skipped", skipped_label)
    table.add_row("Filtered", str(session.filtered))
    table.add_row("Processing time", duration_label)
    console.print(table)


def _render_errors(session: ScanSession, console: Optional["Console"]) -> None:
    stats = session.errors
    if not stats:
        return

    rate = stats.success_rate(session.items_processed)
    if console is None:
        print(f"Errors: {stats.summary()} (success rate {rate:.0%})")
        for category, _count in stats.most_common():
            print(f"  - {category.value}: {error_suggestion(category)}")
        return

    table = Table(
        title=f"Recognition Errors (success rate {rate:.0%})",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold",
        padding=(0, 1),
    )
    table.add_column("Category", justify="left", style="cyan", no_wrap=True)
    table.add_column("Count", justify="right", style="white", no_wrap=True)
    table.add_column("Suggestion", justify="left", style="dim", overflow="fold")
    for category, count in stats.most_common():
        table.add_row(category.value, str(count), error_suggestion(category))
    console.print(table)


def _substat_label(artifact: Artifact) -> str:
    return ", ".join(str(stat) for stat in artifact.sub_stats)


def _render_records(session: ScanSession, console: Optional["Console"]) -> None:
    if console is None:
        for idx, artifact in enumerate(session.records, start=1):
            location = f" @ {artifact.location}" if artifact.location else ""
            print(
                f"{idx:04d} | {artifact.label} | {artifact.main_stat} | "
                f"{_substat_label(artifact)}{location}"
            )
        return

    table = Table(
        title="Accepted Artifacts",
        box=box.SIMPLE_HEAVY,
        show_header=True,
        header_style="bold",
        show_lines=False,
        pad_edge=False,
    )
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Set", justify="left", style="white", overflow="fold")
    table.add_column("Slot", justify="left", style="cyan", no_wrap=True)
    table.add_column("R", justify="center", style="yellow", no_wrap=True)
    table.add_column("Lv", justify="right", style="white", no_wrap=True)
    table.add_column("Main", justify="left", style="white", no_wrap=True)
    table.add_column("Sub-stats", justify="left", style="dim", overflow="fold")
    table.add_column("Location", justify="left", style="dim", no_wrap=True)

    for idx, artifact in enumerate(session.records, start=1):
        table.add_row(
            f"{idx:04d}",
            artifact.set_key,
            artifact.slot.value,
            str(artifact.rarity),
            f"+{artifact.level}",
            str(artifact.main_stat),
            _substat_label(artifact),
            artifact.location or "",
        )
    console.print(table)


def render_session(session: ScanSession, *, show_records: bool = True) -> None:
    console = Console() if RICH_AVAILABLE else None

    if show_records and session.records:
        if console is not None:
            console.print()
        _render_records(session, console)
    elif not session.records:
        message = "No artifacts accepted."
        if console is None:
            print(message)
        else:
            console.print()
            console.print(message)

    _render_scan_overview(session, console)
    _render_errors(session, console)
