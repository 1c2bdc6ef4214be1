"""Legacy entry point for launching the LoopPlayer GUI or CLI."""

from __future__ import annotations

import sys
import os


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)

    # Check for --debug flag BEFORE any imports that use logging
    if "--debug" in args:
        os.environ["LOOPPLAYER_DEBUG"] = "1"
        args.remove("--debug")

    if args:
        from loopplayer.cli import main as cli_main

        return cli_main(args)
    _launch_gui()
    return 0


def _launch_gui() -> None:
    from loopplayer.app import run as run_gui

    run_gui()


if __name__ == "__main__":
    raise SystemExit(main())
