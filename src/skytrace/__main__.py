"""``python -m skytrace``: the headless live-traffic CLI."""

from __future__ import annotations

from typing import Optional

from skytrace.cli import main as cli_main


def main(argv: Optional[list[str]] = None) -> None:
    cli_main(argv)


if __name__ == "__main__":
    main()
