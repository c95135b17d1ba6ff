from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .engine import scan_artifacts
    from .scan_loop import ArtifactScanner, ScanOptions
    from .session import ScanSession, ScanState

__all__ = ["ArtifactScanner", "ScanOptions", "ScanSession", "ScanState", "scan_artifacts"]


def __getattr__(name: str):
    if name in {"ArtifactScanner", "ScanOptions"}:
        from . import scan_loop

        return getattr(scan_loop, name)
    if name in {"ScanSession", "ScanState"}:
        from . import session

        return getattr(session, name)
    if name == "scan_artifacts":
        from .engine import scan_artifacts as _scan_artifacts

        return _scan_artifacts
    raise AttributeError(f"module 'artiscan.scanner' has no attribute {name!r}")
