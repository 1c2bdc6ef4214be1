"""LoopPlayer command-line interface.

Argparse-based CLI that launches the GUI (default) and exposes headless
commands that edit or play the saved session. Logging is initialized before
any work. Exposed via ``python -m loopplayer``.
"""

from __future__ import annotations

import argparse
import asyncio
import io
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Callable, Optional

from . import __app_name__, __version__
from .config import PlayerConfig
from .content.models import ImportFile, is_supported_image
from .content.resources import read_import_files
from .logging_utils import setup_logging, get_default_log_path, LogMode
from .player import PlayerController
from .session.events import PlayerEvent, PlayerEventType


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-mode",
        choices=[mode.value for mode in LogMode],
        default=LogMode.NORMAL.value,
        help="Logging preset: quiet suppresses console info, perf forces DEBUG",
    )
    parser.add_argument(
        "--log-file",
        default=str(get_default_log_path()),
        help="Path to log file (default: per-user LoopPlayer directory)",
    )


def _add_store_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store-dir",
        default=argparse.SUPPRESS,
        help="Directory holding the saved session (default: per-user LoopPlayer directory)",
    )
    parser.add_argument(
        "--no-persist",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Do not read or write the saved session",
    )


def _build_logging_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    _add_logging_args(parent)
    _add_store_args(parent)
    return parent


def _apply_store_env(args: argparse.Namespace) -> None:
    store_dir = getattr(args, "store_dir", None)
    if store_dir:
        os.environ["LOOPPLAYER_STORE_DIR"] = str(Path(store_dir).expanduser())
    if getattr(args, "no_persist", False):
        os.environ["LOOPPLAYER_NO_PERSIST"] = "1"


def _headless_config() -> PlayerConfig:
    # Edits made from the command line must reach disk before the process exits.
    return replace(PlayerConfig.from_env(), flush_on_close=True)


def _with_player(body: Callable[[PlayerController], Awaitable[int]]) -> int:
    async def _runner() -> int:
        async with PlayerController(_headless_config()) as controller:
            if not controller.persistence.available:
                logging.getLogger(__name__).warning("Saved session unavailable; changes will not be kept")
            return await body(controller)

    return asyncio.run(_runner())


def selftest() -> int:
    """Fast import-and-decode smoke test. Returns exit code."""
    log = logging.getLogger(__name__)
    try:
        import PyQt6  # noqa: F401  # Ensure UI deps import
        import qasync  # noqa: F401
        from PIL import Image
        from .content.resources import ResourceManager

        buf = io.BytesIO()
        Image.new("RGB", (4, 3), (200, 40, 40)).save(buf, format="PNG")

        async def _probe() -> tuple[int, int]:
            resources = ResourceManager()
            entry = await resources.import_file(buf.getvalue(), "selftest.png")
            size = (entry.handle.width, entry.handle.height)
            resources.release_all()
            return size

        width, height = asyncio.run(_probe())
        if (width, height) != (4, 3):
            raise RuntimeError(f"Unexpected decoded size {width}x{height}")

        msg = f"Selftest OK: {__app_name__} {__version__} imports + decode available"
        log.info(msg)
        print(msg)
        return 0
    except Exception as e:
        log.error("Selftest failed: %s", e)
        return 1


def _entry_payload(controller: PlayerController) -> dict:
    return {
        "interval_ms": controller.interval_ms,
        "count": len(controller.collection),
        "max_images": controller.collection.max_images,
        "entries": [
            {"id": entry.id, "name": entry.display_name} for entry in controller.collection
        ],
    }


def cmd_list(args) -> int:
    async def _body(controller: PlayerController) -> int:
        payload = _entry_payload(controller)
        if getattr(args, "json", False):
            print(json.dumps(payload, indent=2))
            return 0
        print(f"Interval: {payload['interval_ms']} ms")
        print(f"Images: {payload['count']} / {payload['max_images']}")
        for pos, item in enumerate(payload["entries"], start=1):
            print(f"  {pos:>2}. {item['id']}  {item['name']}")
        return 0

    return _with_player(_body)


def _collect_import_files(paths: list[str]) -> tuple[list[ImportFile], list[str]]:
    supported: list[Path] = []
    skipped: list[str] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_file():
            skipped.append(f"{raw} (not a file)")
        elif not is_supported_image(path.name):
            skipped.append(f"{raw} (unsupported type)")
        else:
            supported.append(path)
    files = read_import_files(supported)
    if len(files) < len(supported):
        skipped.append(f"{len(supported) - len(files)} unreadable file(s)")
    return files, skipped


def cmd_import(args) -> int:
    files, skipped = _collect_import_files(list(args.files))

    async def _body(controller: PlayerController) -> int:
        report = await controller.import_files(files)
        print(f"Imported {len(report.accepted)} image(s); {len(controller.collection)} in session")
        for name in skipped:
            print(f"Skipped: {name}")
        for name in report.failed:
            print(f"Failed to decode: {name}")
        if report.capacity_exceeded:
            print(
                f"Capacity of {controller.collection.max_images} reached: "
                f"{report.rejected} image(s) not added"
            )
        if skipped or report.failed or report.rejected:
            return 2
        return 0

    return _with_player(_body)


def cmd_remove(args) -> int:
    async def _body(controller: PlayerController) -> int:
        removed = controller.remove(args.id)
        if removed is None:
            print(f"No image with id {args.id}")
            return 1
        print(f"Removed {removed.display_name}")
        return 0

    return _with_player(_body)


def cmd_reorder(args) -> int:
    async def _body(controller: PlayerController) -> int:
        # Positions are 1-based on the command line, matching `list`.
        if not controller.reorder(args.from_pos - 1, args.to_pos - 1):
            print(f"Invalid positions {args.from_pos} -> {args.to_pos} for {len(controller.collection)} image(s)")
            return 1
        print(f"Moved image {args.from_pos} to position {args.to_pos}")
        return 0

    return _with_player(_body)


def cmd_interval(args) -> int:
    async def _body(controller: PlayerController) -> int:
        applied = controller.set_interval(args.ms)
        print(f"Interval: {applied} ms")
        return 0

    return _with_player(_body)


def cmd_clear(args) -> int:
    async def _body(controller: PlayerController) -> int:
        removed = controller.clear()
        print(f"Removed {removed} image(s)")
        return 0

    return _with_player(_body)


def cmd_play(args) -> int:
    """Headless playback: print every index change until the duration elapses."""

    async def _body(controller: PlayerController) -> int:
        if len(controller.collection) == 0:
            print("Nothing to play: the session has no images")
            return 1
        if args.interval is not None:
            # Applies to this run only; the saved interval is left untouched.
            controller.scheduler.set_interval(args.interval)
        stopped = asyncio.Event()

        def _on_index(event: PlayerEvent) -> None:
            index = event.data.get("index", 0)
            current = controller.collection.current
            name = current.display_name if current is not None else "-"
            print(f"{index + 1}/{len(controller.collection)} {name}", flush=True)

        controller.events.subscribe(PlayerEventType.INDEX_CHANGED, _on_index)
        controller.events.subscribe(PlayerEventType.PLAYBACK_STOPPED, lambda _e: stopped.set())
        controller.start()
        print(
            f"Playing {len(controller.collection)} image(s) every {controller.interval_ms} ms "
            f"({controller.scheduler.strategy.value})",
            flush=True,
        )
        try:
            await asyncio.wait_for(stopped.wait(), timeout=max(0.0, float(args.duration)))
        except asyncio.TimeoutError:
            pass
        controller.stop()
        return 0

    return _with_player(_body)


def build_parser() -> argparse.ArgumentParser:
    logging_parent = _build_logging_parent()
    parser = argparse.ArgumentParser(
        description="LoopPlayer CLI",
        parents=[logging_parent],
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    sub = parser.add_subparsers(dest="command", required=False)

    def add_subparser(name: str, **kwargs: object) -> argparse.ArgumentParser:
        parents = list(kwargs.pop("parents", []))
        parents.insert(0, logging_parent)
        return sub.add_parser(name, parents=parents, **kwargs)

    add_subparser("run", help="Start the GUI (default)")

    p_import = add_subparser("import", help="Add image files to the saved session")
    p_import.add_argument("files", nargs="+", help="Image files (jpg, jpeg, png, webp)")

    p_list = add_subparser("list", help="Show the saved session")
    p_list.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    p_remove = add_subparser("remove", help="Remove an image by id")
    p_remove.add_argument("id", help="Entry id as shown by 'list'")

    p_reorder = add_subparser("reorder", help="Move an image to another position")
    p_reorder.add_argument("from_pos", type=int, metavar="FROM", help="1-based position to move")
    p_reorder.add_argument("to_pos", type=int, metavar="TO", help="1-based target position")

    p_interval = add_subparser("interval", help="Set the playback interval (clamped to 16..10000 ms)")
    p_interval.add_argument("ms", help="Interval in milliseconds")

    add_subparser("clear", help="Remove every image from the saved session")

    p_play = add_subparser("play", help="Play the saved session headlessly, printing index changes")
    p_play.add_argument("--duration", type=float, default=3.0, help="Seconds to play (default 3.0)")
    p_play.add_argument("--interval", default=None, help="Interval override for this run, in ms")

    add_subparser("selftest", help="Quick environment/import check")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging before doing any work
    if getattr(args, "log_mode", None):
        os.environ["LOOPPLAYER_LOG_MODE"] = args.log_mode
    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        log_mode=args.log_mode,
        add_console=True,
    )
    _apply_store_env(args)

    cmd = args.command or "run"
    if cmd == "run":
        # Import the GUI lazily so headless commands never load Qt widgets.
        from .app import run as run_gui  # local import
        run_gui()
        return 0
    if cmd == "selftest":
        return selftest()

    handlers: dict[str, Callable[[argparse.Namespace], int]] = {
        "import": cmd_import,
        "list": cmd_list,
        "remove": cmd_remove,
        "reorder": cmd_reorder,
        "interval": cmd_interval,
        "clear": cmd_clear,
        "play": cmd_play,
    }
    handler = handlers.get(cmd)
    if handler is None:
        parser.print_help()
        return 2
    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
