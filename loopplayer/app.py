import sys, threading, traceback, os
import asyncio
import logging, faulthandler

import qasync
from PyQt6.QtWidgets import QApplication
from PyQt6.QtCore import qInstallMessageHandler

from . import __app_name__, __version__
from .config import PlayerConfig
from .logging_utils import setup_logging
from .player import PlayerController
from .ui.capabilities import PlatformCapabilities
from .ui.player_window import PlayerWindow

_DIAG_INSTALLED = False


def _install_diagnostics():
    global _DIAG_INSTALLED
    if _DIAG_INSTALLED:
        return
    if os.environ.get("LOOPPLAYER_NO_DIAG", "0") in ("1", "true", "True", "yes"):
        return
    _DIAG_INSTALLED = True
    log = logging.getLogger("diag")
    # Faulthandler for native crash backtraces
    try:
        faulthandler.enable(all_threads=True)
    except (RuntimeError, ValueError, OSError):
        pass

    def _excepthook(t, v, tb):
        log.error("UNCAUGHT %s: %s", t.__name__, v)
        for line in traceback.format_tb(tb):
            log.error(line.rstrip())
    sys.excepthook = _excepthook

    def _thread_excepthook(args):
        log.error("THREAD EXC in %s: %s", getattr(args, 'thread', None), args.exc_value)
        for line in traceback.format_tb(args.exc_traceback):
            log.error(line.rstrip())
    threading.excepthook = _thread_excepthook

    def _qt_msg_handler(mode, ctx, msg):  # type: ignore[unused-argument]
        log.debug("QT: %s", msg)
    qInstallMessageHandler(_qt_msg_handler)
    log.info("DIAG handlers installed")


async def _main_async(app: QApplication, config: PlayerConfig) -> None:
    log = logging.getLogger(__name__)
    controller = PlayerController(config, host=asyncio.get_running_loop())
    # Restore before the window accepts any edit.
    await controller.startup()

    win = PlayerWindow(controller, PlatformCapabilities.detect())
    win.show()

    quit_event = asyncio.Event()
    win.closed.connect(quit_event.set)
    app.aboutToQuit.connect(quit_event.set)
    try:
        await quit_event.wait()
    finally:
        released = await controller.shutdown()
        log.info("%s %s exiting (released %d handle(s))", __app_name__, __version__, released)


def run():
    # Ensure logging is configured when launching GUI directly
    log_mode_env = os.environ.get("LOOPPLAYER_LOG_MODE")
    debug_mode = os.environ.get("LOOPPLAYER_DEBUG", "0") in ("1", "true", "True", "yes")
    log_level = "DEBUG" if debug_mode else "WARNING"
    if not logging.getLogger().handlers:
        setup_logging(level=log_level, add_console=True, log_mode=log_mode_env)
    _install_diagnostics()

    app = QApplication(sys.argv)
    app.setApplicationName(__app_name__)
    app.setApplicationVersion(__version__)
    # The loop owns shutdown; quitting Qt early would stop it mid-teardown.
    app.setQuitOnLastWindowClosed(False)

    # Setup qasync event loop for async/await support with PyQt6
    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    with loop:
        loop.run_until_complete(_main_async(app, PlayerConfig.from_env()))


if __name__ == "__main__":
    run()
