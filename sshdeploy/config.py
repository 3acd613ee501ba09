import os
import re
from typing import Optional, List

# ========= Static config =========
CONNECT_TIMEOUT = 10
KEEPALIVE_INTERVAL = 30
BUFFER_SIZE = 4096

TERMINAL_NAME = "xterm"
DEFAULT_TERMINAL_WIDTH = 80
DEFAULT_TERMINAL_HEIGHT = 24
SHELL_READ_INTERVAL = 0.02
MAX_SHELL_TAIL_CHARS = 8192
LOGOUT_PROMPT = "logout"
LOGOUT_WAIT = 2.0

MIN_POLL_INTERVAL = 1
MAX_POLL_INTERVAL = 60
DEFAULT_POLL_INTERVAL = 1
POLL_QUANTUM = 0.01  # seconds between cancellation checks

REMOTE_SEPARATOR = "/"
DEFAULT_PORT = 22
DEFAULT_USER = "pi"
DEFAULT_MONITOR_FILE = "sshdeploy.ready"
DEFAULT_EXCLUDE = ".ready|.vshost.exe|.vshost.exe.config"
EXCLUDE_SEPARATOR = "|"
CACHE_DIR_NAME = ".sshdeploy-cache"
EVENT_LOG_NAME = "deployments.log"

# ========= Terminal bytes =========
ESCAPE = 0x1B
BELL = 0x07
CONTROL_SEQUENCE_INITIATORS = (ord("["), ord("]"))

# ========= Output cleanup =========
ANSI_ESCAPE = re.compile(r"\x1B(?:\][^\x07]*\x07|[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class ConfigurationError(ValueError):
    """Invalid or missing settings detected before any work starts."""


# ========= Runtime Configuration =========
class DeployConfig:
    def __init__(self):
        self.SSH_HOST: Optional[str] = None
        self.SSH_USER: str = DEFAULT_USER
        self.SSH_PASSWORD: Optional[str] = None
        self.SSH_PORT: int = DEFAULT_PORT
        self.SSH_KEY_PATH: Optional[str] = None
        self.SSH_KEY_PASSPHRASE: Optional[str] = None
        self.SSH_VERIFY_HOST_KEY: bool = True

        self.SOURCE_PATH: str = ""
        self.TARGET_PATH: str = ""
        self.MONITOR_FILE: str = DEFAULT_MONITOR_FILE
        self.EXCLUDE_SUFFIXES: List[str] = parse_suffixes(DEFAULT_EXCLUDE)
        self.PRE_COMMAND: str = ""
        self.POST_COMMAND: str = ""
        self.CLEAN_TARGET: bool = False
        self.POLL_ENABLED: bool = True
        self.POLL_INTERVAL: int = DEFAULT_POLL_INTERVAL
        self.VERBOSE: bool = False

        self.CACHE_ROOT: str = ""

    def load_from_env(self):
        self.SSH_HOST = os.environ.get("SSHDEPLOY_HOST", self.SSH_HOST)
        self.SSH_USER = os.environ.get("SSHDEPLOY_USER", self.SSH_USER)
        self.SSH_PASSWORD = os.environ.get("SSHDEPLOY_PASSWORD", self.SSH_PASSWORD)
        port_env = os.environ.get("SSHDEPLOY_PORT")
        if port_env is not None:
            try:
                self.SSH_PORT = int(port_env)
            except ValueError:
                raise ConfigurationError(f"SSHDEPLOY_PORT must be an integer, got {port_env!r}")
        self.SSH_KEY_PATH = os.environ.get("SSHDEPLOY_KEY_PATH", self.SSH_KEY_PATH)
        self.SSH_KEY_PASSPHRASE = os.environ.get("SSHDEPLOY_KEY_PASSPHRASE", self.SSH_KEY_PASSPHRASE)

        verify_host_env = os.environ.get("SSHDEPLOY_VERIFY_HOST_KEY")
        if verify_host_env is not None:
            self.SSH_VERIFY_HOST_KEY = verify_host_env.lower() in ("true", "1", "yes")

        self.SOURCE_PATH = os.environ.get("SSHDEPLOY_SOURCE", self.SOURCE_PATH)
        self.TARGET_PATH = os.environ.get("SSHDEPLOY_TARGET", self.TARGET_PATH)
        self.MONITOR_FILE = os.environ.get("SSHDEPLOY_MONITOR_FILE", self.MONITOR_FILE)
        exclude_env = os.environ.get("SSHDEPLOY_EXCLUDE")
        if exclude_env is not None:
            self.EXCLUDE_SUFFIXES = parse_suffixes(exclude_env)
        self.PRE_COMMAND = os.environ.get("SSHDEPLOY_PRE_COMMAND", self.PRE_COMMAND)
        self.POST_COMMAND = os.environ.get("SSHDEPLOY_POST_COMMAND", self.POST_COMMAND)

        clean_env = os.environ.get("SSHDEPLOY_CLEAN")
        if clean_env is not None:
            self.CLEAN_TARGET = clean_env.lower() in ("true", "1", "yes")
        poll_env = os.environ.get("SSHDEPLOY_POLL")
        if poll_env is not None:
            self.POLL_ENABLED = poll_env.lower() in ("true", "1", "yes")
        interval_env = os.environ.get("SSHDEPLOY_POLL_INTERVAL")
        if interval_env is not None:
            try:
                self.POLL_INTERVAL = int(interval_env)
            except ValueError:
                raise ConfigurationError(f"SSHDEPLOY_POLL_INTERVAL must be an integer, got {interval_env!r}")

    def normalize(self) -> None:
        self.SOURCE_PATH = os.path.abspath((self.SOURCE_PATH or os.getcwd()).strip())
        self.TARGET_PATH = (self.TARGET_PATH or "").strip()
        monitor_file = (self.MONITOR_FILE or DEFAULT_MONITOR_FILE).strip()
        if os.path.isabs(monitor_file):
            self.MONITOR_FILE = os.path.normpath(monitor_file)
        else:
            self.MONITOR_FILE = os.path.join(self.SOURCE_PATH, monitor_file)

    def validate_connection(self) -> None:
        if not self.SSH_HOST:
            raise ConfigurationError("SSH host is required (via --host or SSHDEPLOY_HOST env)")
        if not self.SSH_USER:
            raise ConfigurationError("SSH user is required (via --username or SSHDEPLOY_USER env)")

    def validate_deployment(self) -> None:
        self.validate_connection()
        if not self.TARGET_PATH:
            raise ConfigurationError("Target path is required (via --target or SSHDEPLOY_TARGET env)")
        if not self.TARGET_PATH.startswith(REMOTE_SEPARATOR):
            raise ConfigurationError(f"Target path '{self.TARGET_PATH}' must be absolute")
        if not os.path.isdir(self.SOURCE_PATH):
            raise ConfigurationError(f"Source path '{self.SOURCE_PATH}' was not found")

    def validate_monitor(self) -> None:
        self.validate_deployment()
        if self.POLL_ENABLED:
            validate_poll_interval(self.POLL_INTERVAL)


def parse_suffixes(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [item for item in text.split(EXCLUDE_SEPARATOR) if item]


def validate_poll_interval(seconds: int) -> None:
    if seconds < MIN_POLL_INTERVAL or seconds > MAX_POLL_INTERVAL:
        raise ConfigurationError(
            f"Poll interval must be between {MIN_POLL_INTERVAL} and {MAX_POLL_INTERVAL} seconds, got {seconds}"
        )


# Global instance
config = DeployConfig()
