from __future__ import annotations

import sys

from .cli import config as config_cli
from .cli import scan as scan_cli


def main(argv=None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        return _menu()

    cmd, *rest = args
    cmd = cmd.lower().strip()

    if cmd == "scan":
        return scan_cli.main(rest)
    if cmd in {"config", "scan-config", "settings"}:
        return config_cli.main(rest)

    print(f"Unknown command: {cmd}\n")
    return _menu()


def _menu() -> int:
    while True:
        print("Artiscan\n")
        print("  1) Scan artifacts (GOOD export)")
        print("  2) Scan artifacts (CSV export)")
        print("  3) Scan configuration")
        print("  q) Quit\n")

        choice = input("Select an option: ").strip().lower()
        if choice == "1":
            return scan_cli.main(["--format", "good"])
        if choice == "2":
            return scan_cli.main(["--format", "csv"])
        if choice == "3":
            config_cli.main([])
            continue
        if choice in {"q", "quit", "exit"}:
            return 0

        print("\nInvalid choice. Please try again.\n")


if __name__ == "__main__":
    raise SystemExit(main())
