"""Single-key console input for the monitor loop.

POSIX terminals are switched to cbreak mode for the lifetime of the reader
so keys arrive without Enter; Windows consoles use msvcrt.
"""

import os
import sys
import select
from typing import Optional

F1 = "F1"
ENTER = "ENTER"
TOGGLE_ALIASES = ("\x1d",)  # Ctrl+]

_F1_SEQUENCES = ("\x1bOP", "\x1b[11~", "\x1b[[A")


class KeyReader:
    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self.fd: Optional[int] = None
        self._saved_tty_state = None
        self._windows = os.name == "nt"

    def __enter__(self) -> "KeyReader":
        if self._windows or not self.stream.isatty():
            return self
        import termios
        import tty

        self.fd = self.stream.fileno()
        self._saved_tty_state = termios.tcgetattr(self.fd)
        tty.setcbreak(self.fd, termios.TCSANOW)
        return self

    def __exit__(self, *exc_info) -> None:
        if self._saved_tty_state is not None:
            import termios

            termios.tcsetattr(self.fd, termios.TCSAFLUSH, self._saved_tty_state)
            self._saved_tty_state = None

    def read_key(self) -> str:
        """Block for the next key. Returns a character, F1 or ENTER; '' at end of input."""
        if self._windows:
            return self._read_windows_key()
        if self.fd is None:
            return self._read_line_key()

        char = os.read(self.fd, 1).decode("utf-8", errors="replace")
        if char == "\x1b":
            sequence = char
            while len(sequence) < 5 and select.select([self.fd], [], [], 0.05)[0]:
                sequence += os.read(self.fd, 1).decode("utf-8", errors="replace")
                if sequence in _F1_SEQUENCES:
                    return F1
            return sequence
        return self._normalize(char)

    def _read_line_key(self) -> str:
        char = self.stream.read(1)
        return self._normalize(char) if char else ""

    def _read_windows_key(self) -> str:
        import msvcrt

        char = msvcrt.getwch()
        if char in ("\x00", "\xe0"):
            code = msvcrt.getwch()
            return F1 if code == ";" else ""
        return self._normalize(char)

    @staticmethod
    def _normalize(char: str) -> str:
        if char in ("\r", "\n"):
            return ENTER
        if char in TOGGLE_ALIASES:
            return F1
        return char
