"""
Rich renderables used by the live dashboard and the end-of-scan report.

Rich is looked up once; when it is missing every name below is None and
callers fall back to plain ``print`` output.
"""

from __future__ import annotations

import importlib.util

RICH_AVAILABLE = importlib.util.find_spec("rich") is not None

if RICH_AVAILABLE:
    from rich import box
    from rich.console import Console, Group
    from rich.live import Live
    from rich.panel import Panel
    from rich.progress import (
        BarColumn,
        MofNCompleteColumn,
        Progress,
        TextColumn,
        TimeElapsedColumn,
    )
    from rich.rule import Rule
    from rich.table import Table
    from rich.text import Text
else:  # pragma: no cover - rich missing
    box = Console = Group = Live = Panel = Rule = Table = Text = None
    BarColumn = MofNCompleteColumn = Progress = TextColumn = TimeElapsedColumn = None
