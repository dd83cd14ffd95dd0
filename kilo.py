#!/usr/bin/env python3

# Copyright (c) 2026 Kilo contributors
# SPDX-License-Identifier: ISC

"""
Overview
========

The terminal bootstrap of a small text editor, built on rawterm (pure-Python
raw terminal I/O). It takes over the terminal, works out its size, draws a
column of filler glyphs down the left edge, and reads keys one at a time
until Ctrl-Q is pressed.

Keys:

  Ctrl-Q : Quit

Other keys are read and ignored.


Running
=======

kilo.py can be run either as a standalone executable or by calling the kilo()
function. Command-line arguments are ignored.

The exit status is 0 after Ctrl-Q, and 1 if a terminal operation failed. In
the latter case, the failing call and the OS error are printed to stderr.


Environment
===========

KILO_FILLER:
  The glyph drawn at the start of each screen row. Defaults to '~'. Must be a
  single character.

KILO_CURSOR_PROBE:
  If set to anything but '' or '0', skip the TIOCGWINSZ ioctl and always get
  the window size from the terminal's cursor position report. Useful for
  testing terminals that don't support the ioctl.

Warnings (e.g. about the window size fallback) are printed to stderr after
the terminal has been restored.
"""

import os
import sys

import rawterm
from rawterm import (
    CLEAR_SCREEN,
    CURSOR_HOME,
    EditorState,
    TerminalError,
    ctrl_key,
    probe_window_size,
)

# Key that exits the editor
QUIT_KEY = ctrl_key("q")

# Row separator. OPOST is off in raw mode, so "\n" alone doesn't return the
# cursor to column 0.
ROW_SEPARATOR = b"\r\n"

DEFAULT_FILLER = b"~"


#
# Configuration
#


def _filler_from_env(state):
    # Returns the filler glyph as bytes, from KILO_FILLER if it's usable

    filler = os.environ.get("KILO_FILLER")
    if filler is None:
        return DEFAULT_FILLER

    if len(filler) != 1:
        state.warn(
            f"ignoring KILO_FILLER={filler!r}, which isn't a single character"
        )
        return DEFAULT_FILLER

    return filler.encode("utf-8", "surrogateescape")


def _force_cursor_probe_from_env():
    return os.environ.get("KILO_CURSOR_PROBE", "") not in ("", "0")


#
# Main application
#


def _main():
    # sys.argv is ignored
    sys.exit(kilo())


def kilo(fd_in=None, fd_out=None, warn=True, force_cursor_probe=None):
    """
    Runs the editor on the terminal, returning the exit status after the
    user quits (0) or a terminal operation fails (1).

    fd_in/fd_out:
      File descriptors of the terminal. Default to stdin and stdout.

    warn:
      If True, warnings collected while the terminal was in raw mode are
      printed to stderr once it has been restored

    force_cursor_probe:
      If True, skip the TIOCGWINSZ ioctl and get the window size from the
      cursor position report. None means use KILO_CURSOR_PROBE.
    """
    if force_cursor_probe is None:
        force_cursor_probe = _force_cursor_probe_from_env()

    state = EditorState()
    filler = _filler_from_env(state)

    def editor(term):
        probe_window_size(term, state, force_cursor_probe)
        editor_loop(term, state, filler)

    try:
        # Leaving raw mode can fail too, so it happens inside the try
        rawterm.run(editor, state, fd_in, fd_out)
        status = 0
    except TerminalError as e:
        status = die(rawterm.Terminal(state, fd_in, fd_out), e)

    if warn:
        for msg in state.warnings:
            print("kilo warning:", msg, file=sys.stderr)

    return status


def editor_loop(term, state, filler=DEFAULT_FILLER):
    """
    Redraws the screen and handles one key at a time, returning when the
    user quits. Terminal failures propagate as TerminalError.
    """
    while True:
        refresh_screen(term, state, filler)
        if not process_keypress(term, term.read_key()):
            return


def process_keypress(term, key):
    # Handles the key 'key' (an int). Returns False if the editor should
    # exit.

    if key == QUIT_KEY:
        term.write_best_effort(CLEAR_SCREEN + CURSOR_HOME)
        return False

    # No other commands yet
    return True


#
# Output
#


def draw_rows(state, filler=DEFAULT_FILLER):
    """
    Returns the bytes for the screen rows: one filler glyph per row,
    separated by ROW_SEPARATOR. There's no separator after the last row,
    which would scroll the screen up by one line.
    """
    return ROW_SEPARATOR.join([filler] * state.screen_rows)


def screen_frame(state, filler=DEFAULT_FILLER):
    # Returns the bytes that refresh_screen() writes

    if not state.size_known:
        raise RuntimeError("screen drawn before the window size is known")

    # TODO: diff against the previous frame and only write what changed,
    # instead of redrawing the whole screen every time
    buf = [CLEAR_SCREEN, CURSOR_HOME, draw_rows(state, filler), CURSOR_HOME]
    return b"".join(buf)


def refresh_screen(term, state, filler=DEFAULT_FILLER):
    """
    Clears the screen and redraws it, leaving the cursor in the top-left
    corner. Everything goes out in a single write, so the terminal never
    shows a half-drawn frame.
    """
    term.write_best_effort(screen_frame(state, filler))


#
# Failure
#


def die(term, err):
    """
    Reports the fatal terminal error 'err' (a TerminalError) on a cleared
    screen and returns the exit status (1).

    By the time this runs, the terminal has been taken out of raw mode, so
    the message isn't mangled.
    """
    term.write_best_effort(CLEAR_SCREEN + CURSOR_HOME)
    print(err, file=sys.stderr)
    return 1


if __name__ == "__main__":
    _main()
