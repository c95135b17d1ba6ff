from __future__ import annotations

import time
from collections import Counter, deque
from typing import Deque, Optional, Tuple

from .outcomes import OUTCOME_ORDER, _outcome_style
from .rich_support import (
    BarColumn,
    Console,
    Group,
    Live,
    MofNCompleteColumn,
    Panel,
    Progress,
    Rule,
    Table,
    Text,
    TextColumn,
    TimeElapsedColumn,
    box,
)

# ----- Live artifact dashboard -----

EVENT_LOG_SIZE = 8
TALLY_BAR_WIDTH = 18


def _clock(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--:--"
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:d}:{minutes:02d}:{secs:02d}" if hours else f"{minutes:02d}:{secs:02d}"


def _rate(done: int, elapsed: Optional[float]) -> str:
    if not elapsed or done <= 0:
        return "-"
    return f"{done / elapsed:.2f} items/s"


def _share_bar(count: int, total: int, style: str) -> Text:
    filled = 0 if total <= 0 else round(TALLY_BAR_WIDTH * count / total)
    bar = Text("█" * filled, style=style)
    bar.append("·" * (TALLY_BAR_WIDTH - filled), style="dim")
    return bar


class _ScanLiveUI:
    """
    Full-screen-ish view of a running artifact scan.

    Everything is re-rendered from plain attributes on every refresh, so
    callers may poke fields directly and then call ``refresh``.
    """

    def __init__(self) -> None:
        self.console = Console()
        self.phase = "Starting"
        self.inventory_label = ""
        self.delay_label = ""
        self.state_label = ""
        self.current_label = ""
        self.last_item_label = ""
        self.last_outcome_label = ""

        self._tally: Counter = Counter()
        self._log: Deque[Tuple[str, str, str]] = deque(maxlen=EVENT_LOG_SIZE)
        self._started: Optional[float] = None

        self._bar = Progress(
            TextColumn("[cyan]{task.description}"),
            BarColumn(bar_width=None, complete_style="cyan"),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            expand=True,
        )
        self._task = self._bar.add_task("artifacts", total=None)
        self._live = Live(
            self._render(),
            console=self.console,
            refresh_per_second=8,
            transient=True,
        )

    # ----- Lifecycle -----

    def start(self) -> None:
        self._live.start()

    def stop(self) -> None:
        self._live.stop()

    def start_timer(self) -> None:
        if self._started is None:
            self._started = time.perf_counter()

    # ----- Updates -----

    def set_total(self, total: Optional[int]) -> None:
        self._bar.update(self._task, total=total)
        self.refresh()

    def set_phase(self, phase: str) -> None:
        self.phase = phase
        self.refresh()

    def add_event(self, message: str, style: str = "dim") -> None:
        self._log.append((time.strftime("%H:%M:%S"), message, style))
        self.refresh()

    def update_item(self, current_label: str, item_label: str, outcome: str) -> None:
        self._bar.advance(self._task)
        self._tally[outcome] += 1
        self.current_label = current_label
        self.last_item_label = item_label
        self.last_outcome_label = outcome
        self.refresh()

    def refresh(self) -> None:
        self._live.update(self._render(), refresh=True)

    # ----- Rendering -----

    def _elapsed(self) -> Optional[float]:
        if self._started is None:
            return None
        return time.perf_counter() - self._started

    def _status(self) -> Table:
        elapsed = self._elapsed()
        grid = Table.grid(padding=(0, 2), expand=True)
        for _ in range(4):
            grid.add_column(no_wrap=True)

        outcome = Text(
            self.last_outcome_label or "-",
            style=_outcome_style(self.last_outcome_label),
        )
        grid.add_row(
            Text("phase", style="dim"),
            Text(self.phase, style="bold cyan"),
            Text("inventory", style="dim"),
            self.inventory_label or "-",
        )
        grid.add_row(
            Text("state", style="dim"),
            self.state_label or "-",
            Text("delay", style="dim"),
            self.delay_label or "-",
        )
        grid.add_row(
            Text("item", style="dim"),
            f"{self.current_label or '-'} {self.last_item_label}".rstrip(),
            Text("result", style="dim"),
            outcome,
        )
        grid.add_row(
            Text("elapsed", style="dim"),
            _clock(elapsed),
            Text("rate", style="dim"),
            _rate(sum(self._tally.values()), elapsed),
        )
        return grid

    def _outcome_tally(self) -> Table:
        table = Table(box=box.SIMPLE_HEAD, expand=True, pad_edge=False)
        table.add_column("outcome", no_wrap=True)
        table.add_column("n", justify="right", no_wrap=True)
        table.add_column("share", no_wrap=True)

        seen = sum(self._tally.values())
        extras = sorted(set(self._tally) - set(OUTCOME_ORDER))
        for key in [*OUTCOME_ORDER, *extras]:
            count = self._tally.get(key, 0)
            if not count:
                continue
            style = _outcome_style(key)
            table.add_row(Text(key.lower(), style=style), str(count), _share_bar(count, seen, style))
        if not seen:
            table.add_row(Text("nothing yet", style="dim"), "", "")
        return table

    def _event_log(self) -> Text:
        if not self._log:
            return Text("waiting for the first item", style="dim")
        lines = Text()
        for stamp, message, style in self._log:
            if lines:
                lines.append("\n")
            lines.append(f"{stamp}  ", style="dim")
            lines.append(message, style=style)
        return lines

    def _render(self) -> Group:
        panes = Table.grid(expand=True, padding=(0, 1))
        panes.add_column(ratio=2)
        panes.add_column(ratio=3)
        panes.add_row(
            Panel(self._outcome_tally(), title="outcomes", box=box.ROUNDED),
            Panel(self._event_log(), title="events", box=box.ROUNDED),
        )
        return Group(
            Rule(Text("artiscan: artifact inventory scan", style="bold cyan")),
            self._status(),
            self._bar,
            panes,
        )
