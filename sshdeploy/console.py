import sys
import threading
from typing import Optional
from sshdeploy.utils import describe_exception

# Named colors and the SGR codes used to render them locally.
FOREGROUND_CODES = {
    "black": "30",
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
    "gray": "37",
    "dark_yellow": "33;2",
    "dark_cyan": "36;2",
    "dark_red": "31;2",
}
BACKGROUND_CODES = {
    "black": "40",
    "red": "41",
    "green": "42",
    "yellow": "43",
    "blue": "44",
    "magenta": "45",
    "cyan": "46",
    "gray": "47",
}
RESET = "\x1b[0m"
CLEAR_SCREEN = "\x1b[2J\x1b[H"

_write_lock = threading.Lock()


def _colored(text: str, color: Optional[str]) -> str:
    code = FOREGROUND_CODES.get(color or "")
    if not code:
        return text
    return f"\x1b[{code}m{text}{RESET}"


def write(text: str, color: Optional[str] = None) -> None:
    with _write_lock:
        sys.stdout.write(_colored(text, color))
        sys.stdout.flush()


def write_line(text: str = "", color: Optional[str] = None) -> None:
    write(text + "\n", color)


def error_line(text: str) -> None:
    with _write_lock:
        sys.stderr.write(_colored(text, "red") + "\n")
        sys.stderr.flush()


def write_raw(text: str) -> None:
    """Write remote terminal output as-is (no color wrapping)."""
    with _write_lock:
        sys.stdout.write(text)
        sys.stdout.flush()


def set_colors(foreground: Optional[str], background: Optional[str]) -> None:
    codes = []
    if foreground in FOREGROUND_CODES:
        codes.append(FOREGROUND_CODES[foreground])
    if background in BACKGROUND_CODES:
        codes.append(BACKGROUND_CODES[background])
    if codes:
        write_raw(f"\x1b[{';'.join(codes)}m")


def beep() -> None:
    write_raw("\a")


def clear_screen() -> None:
    write_raw(CLEAR_SCREEN)


def print_exception(exc: BaseException, heading: str = "Deployment failed.") -> None:
    details = describe_exception(exc)
    error_line(heading)
    error_line(f"    Error - {details['type']}")
    error_line(f"    {details['message']}")
    error_line(f"    {details['stack']}")
