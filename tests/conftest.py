# Copyright (c) 2026 Kilo contributors
# SPDX-License-Identifier: ISC
#
# Shared fixtures and helpers for the kilo pytest suite.

import fcntl
import os
import pty
import select
import struct
import sys
import termios

import pytest

# Ensure rawterm and kilo are importable from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from rawterm import EditorState  # noqa: E402

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove kilo's configuration variables so tests see the defaults."""
    monkeypatch.delenv("KILO_FILLER", raising=False)
    monkeypatch.delenv("KILO_CURSOR_PROBE", raising=False)
    yield


@pytest.fixture
def state():
    return EditorState()


@pytest.fixture
def pty_pair():
    """(master, slave) file descriptors of a fresh pseudo-terminal."""
    master, slave = pty.openpty()
    yield master, slave
    for fd in (master, slave):
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def pipes():
    """
    Factory for pipes that get closed after the test. Each call returns a
    (read_fd, write_fd) pair.
    """
    opened = []

    def make():
        r, w = os.pipe()
        opened.extend((r, w))
        return r, w

    yield make

    for fd in opened:
        try:
            os.close(fd)
        except OSError:
            pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def set_winsize(fd, rows, cols):
    """Set the window size of the pseudo-terminal 'fd'."""
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def drain(fd, timeout=0.2):
    """Read whatever 'fd' has to offer until it stays quiet for 'timeout'."""
    data = b""
    while select.select([fd], [], [], timeout)[0]:
        try:
            chunk = os.read(fd, 4096)
        except OSError:
            # EIO from a pty master once the slave is gone
            break
        if not chunk:
            break
        data += chunk
    return data


def feed(fd, data):
    """Write all of 'data' to 'fd' and close it, so readers see EOF after it."""
    os.write(fd, data)
    os.close(fd)


def is_raw(fd):
    """True if the terminal 'fd' has canonical mode and echo turned off."""
    lflag = termios.tcgetattr(fd)[3]
    return not lflag & (termios.ICANON | termios.ECHO)
