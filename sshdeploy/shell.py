import shutil
import time
import threading
from typing import Optional

from sshdeploy.config import (
    BUFFER_SIZE, SHELL_READ_INTERVAL, MAX_SHELL_TAIL_CHARS
)
from sshdeploy.terminal import (
    ColorState, EscapeSequenceDecoder, ForwardingState, apply_colors, parse_escape_sequence
)
from sshdeploy.utils import log_event, strip_ansi
from sshdeploy import console


class ShellDriver:
    """Pumps a remote pseudo-terminal into the local console through the escape decoder."""

    def __init__(self, remote, forwarding: Optional[ForwardingState] = None):
        self.remote = remote
        self.forwarding = forwarding or ForwardingState()
        self.colors = ColorState()
        self.channel = None

        self.decoder = EscapeSequenceDecoder(
            self.forwarding,
            on_char=console.write_raw,
            on_bell=console.beep,
            on_sequence=self._handle_sequence,
            on_unknown=self._print_unknown,
        )

        self.lock = threading.Lock()
        self.tail = ""
        self._stop_event = threading.Event()
        self._reader: Optional[threading.Thread] = None

    def open(self) -> None:
        size = shutil.get_terminal_size()
        self.channel = self.remote.open_shell(width=size.columns, height=size.lines)
        self._stop_event.clear()
        self._reader = threading.Thread(target=self._reader_loop, name="sshdeploy-shell", daemon=True)
        self._reader.start()

    @property
    def is_open(self) -> bool:
        return self.channel is not None and not self.channel.closed

    def ensure_open(self) -> None:
        if self.is_open:
            return
        self.close()
        self.open()

    def _handle_sequence(self, sequence: bytes) -> None:
        command = parse_escape_sequence(sequence)
        if command is None:
            return
        apply_colors(command, self.colors)
        if self.forwarding.output:
            console.set_colors(command.foreground_color, command.background_color)

    def _print_unknown(self, value: int) -> None:
        console.write_line(f"[NPC {value}]", "dark_yellow")

    def _on_error(self, exc: BaseException) -> None:
        log_event("shell_error", error=str(exc), type=type(exc).__name__)
        console.print_exception(exc, heading="Shell stream error.")

    def receive(self, data: bytes) -> None:
        with self.lock:
            self.tail = (self.tail + data.decode("utf-8", errors="replace"))[-MAX_SHELL_TAIL_CHARS:]
        self.decoder.feed(data)

    def pump(self) -> bool:
        """Process whatever the channel has buffered. Returns False once the channel is finished."""
        if self.channel is None or self.channel.closed:
            return False
        if self.channel.recv_ready():
            data = self.channel.recv(BUFFER_SIZE)
            if not data:
                return False
            self.receive(data)
            return True
        if self.channel.exit_status_ready():
            return False
        return True

    def _reader_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                if not self.pump():
                    break
                if not self.channel.recv_ready():
                    self._stop_event.wait(SHELL_READ_INTERVAL)
        except Exception as exc:
            self._on_error(exc)

    def send(self, text: str) -> None:
        self.send_bytes(text.encode("utf-8"))

    def send_bytes(self, data: bytes) -> None:
        if not self.channel:
            raise RuntimeError("shell stream is not open")
        self.channel.sendall(data)

    def send_line(self, text: str) -> None:
        with self.lock:
            self.tail = ""
        self.send(text + "\r\n")

    def run_command(self, command: str) -> None:
        """Write a command into the shell; its output is rendered through the decoder."""
        if not command or not command.strip():
            return
        self.ensure_open()
        console.write_line("    Executing shell command.", "green")
        self.send_line(command)
        console.write_line(f"    TX: {command}", "dark_yellow")

    def expect(self, text: str, timeout: float) -> str:
        """Wait until the received output ends with text. Returns the output seen, or '' on timeout."""
        deadline = time.time() + timeout
        while True:
            with self.lock:
                seen = strip_ansi(self.tail)
            if seen.strip().endswith(text):
                return seen
            if time.time() >= deadline:
                return ""
            time.sleep(SHELL_READ_INTERVAL)

    def close(self) -> None:
        self._stop_event.set()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=1.0)
        self._reader = None
        try:
            if self.channel:
                self.channel.close()
        except Exception:
            pass
        self.channel = None
