"""Shared pytest fixtures for the quarto-record test suite."""

import os
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from quarto_record.config import Settings
from tests.fakes import FakeProcessTable

FAKE_QUARTO = r'''
import os
import signal
import subprocess
import sys
import time

mode = sys.argv[1]
args = sys.argv[2:]

def announce():
    sys.stdout.write("Preparing to preview\n")
    sys.stdout.flush()
    sys.stderr.write("Watching files for changes\n")
    sys.stderr.write("Listening on http://localhost:4200/\n")
    sys.stderr.flush()
    time.sleep(0.05)
    sys.stderr.write("GET: /index.html\n")
    sys.stderr.flush()

if mode == "stubborn":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)

if mode == "child":
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(120)"])
    with open(os.environ["FAKE_QUARTO_CHILD_PIDFILE"], "w") as f:
        f.write(str(child.pid))

if mode == "exit":
    sys.stderr.write("Listening on http://localhost:4200/\n")
    sys.stderr.flush()
    sys.exit(1)

if mode != "silent":
    announce()

while True:
    time.sleep(0.5)
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path: Path to a temporary directory that is cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def reset_environment():
    """Restore the working directory after each test."""
    original_dir = os.getcwd()
    yield
    os.chdir(original_dir)


@pytest.fixture
def captured_logs(caplog):
    """Capture log output down to DEBUG level.

    Example:
        def test_logging(captured_logs):
            logger.debug("test message")
            assert "test message" in captured_logs.text
    """
    caplog.set_level("DEBUG")
    return caplog


@pytest.fixture
def fake_quarto(temp_dir) -> Path:
    """Write a stand-in for the ``quarto`` executable.

    The first argument selects its behaviour:

    - ``ready``: announce the URL, log a request, keep serving
    - ``silent``: never log anything
    - ``exit``: announce the URL, then exit before any request
    - ``stubborn``: like ``ready`` but ignore SIGTERM
    - ``child``: like ``ready`` but first spawn a long-lived child process
    """
    script = temp_dir / "fake_quarto_server.py"
    script.write_text(FAKE_QUARTO)
    return script


@pytest.fixture
def make_settings(fake_quarto):
    """Build fast settings that launch the fake quarto in the given mode."""

    def _make(mode: str = "ready", **overrides) -> Settings:
        values = dict(
            quarto_command=[sys.executable, str(fake_quarto), mode],
            readiness_timeout=10.0,
            settle_delay=0.05,
            render_delay=0.0,
            terminate_timeout=1.0,
            sweep_grace=0.1,
            # Only ever matches processes started from this test's script
            sweep_pattern=str(fake_quarto),
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def fake_process_table() -> FakeProcessTable:
    return FakeProcessTable()
