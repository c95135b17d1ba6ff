from __future__ import annotations

from ..scanner.cli import main as _scanner_main


def main(argv=None) -> int:
    """
    Entrypoint wrapper that delegates execution to the artifact scanner CLI.
    """
    return _scanner_main(argv)
