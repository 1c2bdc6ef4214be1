"""pytest configuration file."""

import pytest, os, logging

# Qt must pick the headless platform before any PyQt6 import.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

pytest_plugins = [
    "pytest_asyncio",
]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (may take several seconds)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture(autouse=True, scope="session")
def _silence_logs():
    os.environ["LOOPPLAYER_NO_DIAG"] = "1"
    logging.getLogger("asyncio").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    yield


@pytest.fixture(autouse=True)
def _isolate_env():
    """The CLI writes LOOPPLAYER_* variables; restore them after every test."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("LOOPPLAYER_")}
    for key in list(os.environ):
        if key.startswith("LOOPPLAYER_") and key != "LOOPPLAYER_NO_DIAG":
            del os.environ[key]
    yield
    for key in list(os.environ):
        if key.startswith("LOOPPLAYER_"):
            del os.environ[key]
    os.environ.update(saved)
