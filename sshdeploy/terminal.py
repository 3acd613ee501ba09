"""Byte-level decoder for remote pseudo-terminal output.

Splits the raw stream into printable characters, the bell, stray control
bytes and escape sequences. Only SGR color sequences are acted on; every
other sequence is dropped after a diagnostic log line.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sshdeploy.config import BELL, ESCAPE, CONTROL_SEQUENCE_INITIATORS
from sshdeploy.utils import log_debug

FOREGROUND_COLORS = {
    "30": "black",
    "31": "red",
    "32": "green",
    "33": "yellow",
    "34": "blue",
    "35": "magenta",
    "36": "cyan",
    "37": "gray",
}
BACKGROUND_COLORS = {
    "40": "black",
    "41": "red",
    "42": "green",
    "43": "yellow",
    "44": "blue",
    "45": "magenta",
    "46": "cyan",
    "47": "gray",
}
SGR_TERMINATORS = ("m", "\a")


class ForwardingState:
    """Shell forwarding toggles shared by the keyboard loop and the shell reader thread."""

    def __init__(self, output: bool = False, input: bool = False):
        self._lock = threading.Lock()
        self._output = output
        self._input = input

    @property
    def output(self) -> bool:
        with self._lock:
            return self._output

    @output.setter
    def output(self, value: bool) -> None:
        with self._lock:
            self._output = bool(value)

    @property
    def input(self) -> bool:
        with self._lock:
            return self._input

    @input.setter
    def input(self, value: bool) -> None:
        with self._lock:
            self._input = bool(value)

    def toggle_input(self) -> bool:
        with self._lock:
            self._input = not self._input
            if self._input:
                self._output = True
            return self._input


@dataclass
class EscapeCommand:
    command: str
    arguments: List[str]
    foreground: Optional[str] = None
    background: Optional[str] = None

    @property
    def foreground_color(self) -> Optional[str]:
        return FOREGROUND_COLORS.get(self.foreground or "")

    @property
    def background_color(self) -> Optional[str]:
        return BACKGROUND_COLORS.get(self.background or "")


@dataclass
class ColorState:
    foreground: str = "gray"
    background: str = "black"


def parse_escape_sequence(sequence: bytes) -> Optional[EscapeCommand]:
    """Interpret the bytes that followed ESC. Returns None for sequences without a color meaning."""
    text = sequence.decode("ascii", errors="replace")
    if not text:
        return None
    command = text[-1]
    if command not in SGR_TERMINATORS:
        log_debug(
            "Unhandled escape sequence.\r\n"
            f"    Text:  {text}\r\n"
            f"    Bytes: {' '.join(str(b) for b in sequence)}"
        )
        return None

    initiators = "".join(chr(b) for b in CONTROL_SEQUENCE_INITIATORS)
    body = text.lstrip(initiators).rstrip(command)
    arguments = [item for item in body.split(";") if item]

    parsed = EscapeCommand(command=command, arguments=arguments)
    if len(arguments) == 1:
        code = arguments[0]
        if code in BACKGROUND_COLORS:
            parsed.background = code
        else:
            parsed.foreground = code
    elif len(arguments) == 2:
        # (attribute, foreground); a background code in the first slot still counts.
        parsed.foreground = arguments[1]
        if arguments[0] in BACKGROUND_COLORS:
            parsed.background = arguments[0]
    elif len(arguments) == 3:
        parsed.background = arguments[0]
        parsed.foreground = arguments[1]
    return parsed


def apply_colors(command: EscapeCommand, colors: ColorState) -> ColorState:
    """Codes outside the mapped set leave the current color unchanged."""
    foreground = command.foreground_color
    background = command.background_color
    if foreground:
        colors.foreground = foreground
    if background:
        colors.background = background
    return colors


@dataclass
class EscapeSequenceBuffer:
    data: bytearray = field(default_factory=bytearray)
    introducer: Optional[int] = None

    def reset(self) -> None:
        self.data.clear()
        self.introducer = None


class EscapeSequenceDecoder:
    def __init__(
        self,
        forwarding: ForwardingState,
        on_char: Callable[[str], None],
        on_bell: Callable[[], None],
        on_sequence: Callable[[bytes], None],
        on_unknown: Optional[Callable[[int], None]] = None,
    ):
        self.forwarding = forwarding
        self.on_char = on_char
        self.on_bell = on_bell
        self.on_sequence = on_sequence
        self.on_unknown = on_unknown

        self.buffer = EscapeSequenceBuffer()
        self.in_escape = False
        self.previous_byte = 0

    def feed(self, data: bytes) -> None:
        for value in data:
            self._feed_byte(value)

    def _feed_byte(self, value: int) -> None:
        if not self.in_escape:
            if value == ESCAPE:
                self.in_escape = True
                self.buffer.reset()
            elif value >= 32 or 8 <= value <= 13:
                if self.forwarding.output:
                    self.on_char(chr(value))
            elif value == BELL:
                if self.forwarding.output:
                    self.on_bell()
            else:
                log_debug(f"[NPC {value}]")
                if self.on_unknown and self.forwarding.output:
                    self.on_unknown(value)
            self.previous_byte = value
            return

        self.buffer.data.append(value)
        if self.previous_byte == ESCAPE:
            self.previous_byte = value
            if value in CONTROL_SEQUENCE_INITIATORS:
                self.buffer.introducer = value
                return
            self.buffer.introducer = None

        self.previous_byte = value
        if self._is_terminator(value):
            sequence = bytes(self.buffer.data)
            try:
                self.on_sequence(sequence)
            except Exception as exc:
                log_debug(f"escape sequence handler failed for {sequence!r}: {exc}")
            finally:
                self.in_escape = False
                self.buffer.reset()

    def _is_terminator(self, value: int) -> bool:
        if self.buffer.introducer == ord("["):
            return 64 <= value <= 126
        if self.buffer.introducer == ord("]"):
            return value == BELL
        return False
