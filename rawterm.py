#!/usr/bin/env python3

# Copyright (c) 2026 Kilo contributors
# SPDX-License-Identifier: ISC

"""
rawterm -- pure-Python raw terminal I/O for kilo

A small terminal layer for a byte-at-a-time editor: raw mode entry and exit
with guaranteed restoration, window size detection, unbuffered output, and
single-byte keyboard input with a bounded wait.

Zero external dependencies. Uses only Python stdlib: termios, fcntl, struct,
signal, os, re.

Window size detection tries the TIOCGWINSZ ioctl first. Terminals that don't
support it (or report zero columns) get the cursor pushed to the bottom-right
corner, followed by a cursor position report request (DSR 6), whose reply
(ESC [ rows ; cols R) gives the size.

Unix only. Any VT100-capable terminal.
"""

import errno
import fcntl
import os
import re
import signal
import struct
import sys
import termios


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TerminalError(Exception):
    """
    Base class for fatal terminal failures.

    context:
      Name of the failing call (e.g. "tcsetattr"), reported the same way
      perror() reports its argument

    os_error:
      The underlying OSError, or None if the failure wasn't an OS error (a
      malformed reply, say)
    """

    def __init__(self, context, os_error=None):
        super().__init__(context, os_error)
        self.context = context
        self.os_error = os_error

    def __str__(self):
        if self.os_error is not None:
            return "{}: {}".format(
                self.context, self.os_error.strerror or self.os_error
            )
        return self.context


class TerminalConfigError(TerminalError):
    """Capturing, applying, or restoring terminal attributes failed."""


class SizeDetectionError(TerminalError):
    """Neither the ioctl nor the cursor position reply gave a window size."""


class InputError(TerminalError):
    """Reading from the terminal failed with a non-retryable error."""


# ---------------------------------------------------------------------------
# Escape sequences and keys
# ---------------------------------------------------------------------------

CLEAR_SCREEN = b"\x1b[2J"
CURSOR_HOME = b"\x1b[H"

# C (forward) and B (down) stop at the screen edge, unlike H, whose behavior
# with out-of-range coordinates isn't documented
CURSOR_TO_BOTTOM_RIGHT = b"\x1b[999C\x1b[999B"

# Device Status Report 6. The terminal answers with ESC [ rows ; cols R.
CURSOR_POSITION_QUERY = b"\x1b[6n"

# Capacity of the cursor position reply buffer. The last slot is never
# filled, so at most CURSOR_REPLY_MAX - 1 bytes are read.
CURSOR_REPLY_MAX = 32

_CURSOR_REPLY_RE = re.compile(rb"\x1b\[(\d+);(\d+)R")

# Holding Ctrl clears bits 5 and 6 of the key pressed
CTRL_MASK = 0x1F


def ctrl_key(ch):
    """Return the byte value the terminal sends for Ctrl+ch."""
    return ord(ch) & CTRL_MASK


# Deciseconds a read waits for input before returning empty (VTIME)
READ_TIMEOUT = 1


# ---------------------------------------------------------------------------
# Editor state
# ---------------------------------------------------------------------------


class EditorState:
    """
    Per-process editor state. Created once at startup and passed explicitly
    to everything that needs it.

    screen_rows/screen_cols:
      Terminal size in character cells. Only valid once size_known is True.

    saved_attributes:
      termios attribute list captured before raw mode was entered, or None
      if raw mode hasn't been entered

    warnings:
      Non-fatal diagnostics, collected while the terminal is in raw mode
      (where stderr output would get mangled) and printed afterwards
    """

    __slots__ = (
        "screen_rows",
        "screen_cols",
        "size_known",
        "saved_attributes",
        "warnings",
    )

    def __init__(self):
        self.screen_rows = 0
        self.screen_cols = 0
        self.size_known = False
        self.saved_attributes = None
        self.warnings = []

    def set_size(self, rows, cols):
        """Record the window size. Can only be done once."""
        if self.size_known:
            raise RuntimeError("window size already set")
        self.screen_rows = rows
        self.screen_cols = cols
        self.size_known = True

    def warn(self, msg):
        self.warnings.append(msg)

    def __repr__(self):
        return "<EditorState {}x{}{}>".format(
            self.screen_rows,
            self.screen_cols,
            "" if self.size_known else " (size unknown)",
        )


# ---------------------------------------------------------------------------
# Cursor position reply
# ---------------------------------------------------------------------------


def parse_cursor_position(reply):
    """
    Parse a cursor position report into a (rows, cols) tuple.

    The reply must be exactly ESC [ <rows> ; <cols> R, with both numbers
    non-zero. Raises SizeDetectionError otherwise.
    """
    match = _CURSOR_REPLY_RE.fullmatch(reply)
    if not match:
        raise SizeDetectionError(
            "malformed cursor position reply {!r}".format(bytes(reply))
        )

    rows, cols = int(match.group(1)), int(match.group(2))
    if not rows or not cols:
        raise SizeDetectionError(
            "cursor position reply {!r} has a zero coordinate".format(bytes(reply))
        )

    return rows, cols


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------


def _terminate_handler(signum, frame):
    # Turn SIGTERM/SIGHUP into SystemExit so that the raw mode guard's
    # __exit__() runs on the way out
    raise SystemExit(128 + signum)


_TERMINATE_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class Terminal:
    """
    Raw-mode terminal on an input and an output file descriptor.

    Used as a context manager, it enters raw mode on entry and restores the
    saved attributes on every way out of the block:

      with Terminal(state) as term:
          ...
    """

    def __init__(self, state, fd_in=None, fd_out=None):
        self.state = state
        self.fd_in = sys.stdin.fileno() if fd_in is None else fd_in
        self.fd_out = sys.stdout.fileno() if fd_out is None else fd_out

        self._raw = False
        self._old_handlers = {}

    def __enter__(self):
        self.enable_raw_mode()
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.disable_raw_mode()
        return False

    @property
    def raw(self):
        """True while the terminal is in raw mode."""
        return self._raw

    # --- Mode ---

    @staticmethod
    def raw_attributes(attrs):
        """
        Return a copy of the termios attribute list 'attrs' with raw mode
        settings applied. 'attrs' itself is left untouched.
        """
        iflag, oflag, cflag, lflag, ispeed, ospeed, cc = attrs

        # IFLAG: no break-to-SIGINT, CR-to-NL translation, parity checking,
        # 8th-bit stripping, or Ctrl-S/Ctrl-Q flow control
        iflag &= ~(
            termios.BRKINT
            | termios.ICRNL
            | termios.INPCK
            | termios.ISTRIP
            | termios.IXON
        )
        # OFLAG: no output post-processing ("\n" to "\r\n")
        oflag &= ~termios.OPOST
        # CFLAG: 8-bit characters
        cflag |= termios.CS8
        # LFLAG: no echo, canonical mode, Ctrl-C/Ctrl-Z signals, or Ctrl-V
        lflag &= ~(termios.ECHO | termios.ICANON | termios.ISIG | termios.IEXTEN)

        # read() returns as soon as any input is available, or empty after
        # READ_TIMEOUT deciseconds
        cc = list(cc)
        cc[termios.VMIN] = 0
        cc[termios.VTIME] = READ_TIMEOUT

        return [iflag, oflag, cflag, lflag, ispeed, ospeed, cc]

    def enable_raw_mode(self):
        """
        Save the current terminal attributes in the editor state and switch
        to raw mode. Raises TerminalConfigError if the attributes can't be
        read or applied.
        """
        if self._raw:
            # Already raw. Saving again would lose the original attributes.
            return

        try:
            self.state.saved_attributes = termios.tcgetattr(self.fd_in)
        except termios.error as e:
            raise TerminalConfigError("tcgetattr", _os_error(e)) from e

        raw = self.raw_attributes(self.state.saved_attributes)
        try:
            termios.tcsetattr(self.fd_in, termios.TCSAFLUSH, raw)
        except termios.error as e:
            raise TerminalConfigError("tcsetattr", _os_error(e)) from e

        self._raw = True
        self._install_signal_handlers()

    def disable_raw_mode(self):
        """
        Restore the attributes saved by enable_raw_mode(). Does nothing if
        raw mode isn't active, so the restore happens at most once. Raises
        TerminalConfigError if the attributes can't be applied.
        """
        if not self._raw:
            return

        # Cleared first so a failed restore isn't retried
        self._raw = False

        try:
            termios.tcsetattr(
                self.fd_in, termios.TCSAFLUSH, self.state.saved_attributes
            )
        except termios.error as e:
            raise TerminalConfigError("tcsetattr", _os_error(e)) from e
        finally:
            self._restore_signal_handlers()

    def _install_signal_handlers(self):
        for signum in _TERMINATE_SIGNALS:
            try:
                self._old_handlers[signum] = signal.signal(signum, _terminate_handler)
            except ValueError:
                # Not the main thread. Signal handlers can't be changed.
                break

    def _restore_signal_handlers(self):
        for signum, handler in self._old_handlers.items():
            # None means the handler wasn't installed from Python
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._old_handlers.clear()

    # --- Output ---

    def write(self, data):
        """Write 'data' unbuffered. Returns the number of bytes written."""
        return os.write(self.fd_out, data)

    def write_best_effort(self, data):
        """Like write(), but ignores errors. Used on the way out."""
        try:
            self.write(data)
        except OSError:
            pass

    # --- Window size ---

    def window_size(self, force_cursor_probe=False):
        """
        Return the terminal size as a (rows, cols) tuple.

        The TIOCGWINSZ ioctl is tried first, unless 'force_cursor_probe' is
        True. If it fails or reports zero columns, the size is read back from
        the cursor position after moving the cursor to the bottom-right
        corner. Raises SizeDetectionError if that fails too.
        """
        if not force_cursor_probe:
            size = self._ioctl_window_size()
            if size is not None:
                return size

            self.state.warn(
                "TIOCGWINSZ gave no window size, asking the terminal for the "
                "cursor position instead"
            )

        self._checked_write(CURSOR_TO_BOTTOM_RIGHT)
        return self.cursor_position()

    def _ioctl_window_size(self):
        # Returns (rows, cols), or None if the ioctl failed or reported zero
        # columns
        try:
            packed = fcntl.ioctl(
                self.fd_out, termios.TIOCGWINSZ, struct.pack("HHHH", 0, 0, 0, 0)
            )
        except OSError:
            return None

        rows, cols, _, _ = struct.unpack("HHHH", packed)
        if cols == 0:
            return None
        return rows, cols

    def cursor_position(self):
        """
        Ask the terminal for the cursor position and return it as a
        (rows, cols) tuple of 1-based coordinates. Raises SizeDetectionError
        if there's no well-formed reply.
        """
        self._checked_write(CURSOR_POSITION_QUERY)

        reply = bytearray()
        while len(reply) < CURSOR_REPLY_MAX - 1:
            try:
                c = os.read(self.fd_in, 1)
            except BlockingIOError:
                # O_NONBLOCK input ignores VTIME. Nothing pending counts as a
                # timeout.
                c = b""
            except InterruptedError:
                continue
            except OSError as e:
                raise SizeDetectionError("read", e) from e

            if not c:
                # Timed out (or end of input). Whatever we have is the reply.
                break
            reply += c
            if c == b"R":
                break
        else:
            raise SizeDetectionError(
                "no end of cursor position reply within {} bytes".format(
                    CURSOR_REPLY_MAX - 1
                )
            )

        return parse_cursor_position(bytes(reply))

    def _checked_write(self, data):
        try:
            n = self.write(data)
        except OSError as e:
            raise SizeDetectionError("write", e) from e
        if n != len(data):
            raise SizeDetectionError(
                "short write ({} of {} bytes)".format(n, len(data))
            )

    # --- Input ---

    def read_key(self):
        """
        Block until a byte of input arrives and return it as an int.

        Reads give up after READ_TIMEOUT deciseconds in raw mode and come
        back empty, which just means another read. EAGAIN and EINTR are
        retried too. Any other error raises InputError.
        """
        while True:
            try:
                c = os.read(self.fd_in, 1)
            except (BlockingIOError, InterruptedError):
                continue
            except OSError as e:
                raise InputError("read", e) from e

            if len(c) == 1:
                return c[0]


def _os_error(e):
    # termios.error carries (errno, strerror) in args but isn't an OSError
    # subclass
    if isinstance(e, OSError):
        return e
    if len(e.args) == 2:
        return OSError(*e.args)
    return OSError(errno.EIO, str(e))


def probe_window_size(term, state, force_cursor_probe=False):
    """Look up the window size once and store it in 'state'."""
    rows, cols = term.window_size(force_cursor_probe)
    state.set_size(rows, cols)
    return rows, cols


# ---------------------------------------------------------------------------
# Safe entry point
# ---------------------------------------------------------------------------


def run(fn, state, fd_in=None, fd_out=None):
    """
    Safe wrapper: enter raw mode, call fn(terminal), restore on exit.

    Raw mode is left on every path out of fn(), including exceptions and
    SystemExit from SIGTERM/SIGHUP. Returns what fn() returns.
    """
    with Terminal(state, fd_in, fd_out) as term:
        return fn(term)
