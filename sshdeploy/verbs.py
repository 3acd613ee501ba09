from typing import Callable, Optional

from sshdeploy.config import LOGOUT_PROMPT, LOGOUT_WAIT, DeployConfig
from sshdeploy.deploy import DeploymentOrchestrator
from sshdeploy.keyboard import ENTER, F1, KeyReader
from sshdeploy.monitor import FileSystemMonitor
from sshdeploy.remote import RemoteSession
from sshdeploy.shell import ShellDriver
from sshdeploy.terminal import ForwardingState
from sshdeploy.utils import log_event
from sshdeploy import console

HELP_COLOR = "cyan"
HELP_LINES = (
    "Console help",
    "    H    Prints this screen",
    "    Q    Quits this application",
    "    C    Clears the screen",
    "    N    Force a deployment cycle",
    "    E    Run the Pre-deployment command",
    "    S    Run the Post-deployment command",
    "    F1   Toggle shell-interactive mode (also Ctrl+])",
)


def print_options(settings: DeployConfig, heading: str, monitor: bool = False) -> None:
    color = "dark_yellow"
    console.write_line()
    console.write_line(heading)
    if monitor:
        console.write_line(f"    Monitor File    {settings.MONITOR_FILE}", color)
        interval = f"{settings.POLL_INTERVAL}s" if settings.POLL_ENABLED else "DISABLED"
        console.write_line(f"    Poll Interval   {interval}", color)
    console.write_line(f"    Source Path     {settings.SOURCE_PATH}", color)
    console.write_line(f"    Excluded Files  {'|'.join(settings.EXCLUDE_SUFFIXES)}", color)
    console.write_line(f"    Target Address  {settings.SSH_HOST}:{settings.SSH_PORT}", color)
    console.write_line(f"    Username        {settings.SSH_USER}", color)
    console.write_line(f"    Target Path     {settings.TARGET_PATH}", color)
    console.write_line(f"    Clean Target    {'YES' if settings.CLEAN_TARGET else 'NO'}", color)
    console.write_line(f"    Pre Deployment  {settings.PRE_COMMAND}", color)
    console.write_line(f"    Post Deployment {settings.POST_COMMAND}", color)


def execute_push(settings: DeployConfig) -> int:
    settings.validate_deployment()
    print_options(settings, "Deploying....")

    remote = RemoteSession(settings)
    try:
        remote.ensure_connected()
        report = DeploymentOrchestrator(remote, settings).deploy()
    finally:
        remote.close()
    return 0 if report is not None and report.success else 1


def execute_run(settings: DeployConfig, command: str) -> int:
    settings.validate_connection()
    remote = RemoteSession(settings)
    try:
        remote.ensure_connected()
        console.write_line("SSH TX:")
        console.write_line(command, "green")
        result = remote.run_command(command)
        console.write_line("SSH RX:")
        if not result.ok:
            console.error_line(f"Error {result.exit_status}")
            if result.stderr.strip():
                console.error_line(result.stderr.rstrip())
        if result.stdout.strip():
            console.write_line(result.stdout.rstrip(), "yellow")
        return result.exit_status
    finally:
        remote.close()


def execute_shell(settings: DeployConfig, read_line: Callable[[], str] = input) -> int:
    settings.validate_connection()
    remote = RemoteSession(settings)
    shell = ShellDriver(remote, ForwardingState(output=True))
    try:
        remote.ensure_connected()
        shell.open()
        while True:
            try:
                line = read_line()
            except EOFError:
                break
            shell.send_line(line)
            if line != "exit":
                continue
            seen = shell.expect(LOGOUT_PROMPT, LOGOUT_WAIT)
            if seen.strip().endswith(LOGOUT_PROMPT):
                break
    finally:
        shell.close()
        remote.close()
    return 0


class MonitorKeyLoop:
    """Keyboard commands while monitoring; forwards keys to the shell in interactive mode."""

    def __init__(self, orchestrator: DeploymentOrchestrator, shell: ShellDriver, forwarding: ForwardingState):
        self.orchestrator = orchestrator
        self.shell = shell
        self.forwarding = forwarding

    def handle_key(self, key: str) -> bool:
        """Process one key. Returns False when the user asked to quit or input ended."""
        if key == "":
            return False
        try:
            return self._dispatch(key)
        except Exception as exc:
            # Remote failures are reported; monitoring keeps running.
            console.print_exception(exc, heading="Console command failed.")
            log_event("key_command_failed", key=key, type=type(exc).__name__, error=str(exc))
            return True

    def _dispatch(self, key: str) -> bool:
        if key == F1:
            if self.forwarding.toggle_input():
                console.write_line("    >> Entered console input forwarding.", "green")
            else:
                console.write_line("    >> Left console input forwarding.", "red")
            return True

        if self.forwarding.input:
            self.shell.ensure_open()
            self.shell.send("\r\n" if key == ENTER else key)
            return True

        command = key.lower()
        if command == "q":
            return False
        if command == "c":
            console.clear_screen()
        elif command == "n":
            self.orchestrator.deploy()
        elif command == "e":
            self.orchestrator.run_pre_command()
        elif command == "s":
            self.orchestrator.run_post_command()
        elif command == "h":
            for line in HELP_LINES:
                console.write_line(line, HELP_COLOR)
            console.write_line()
        else:
            console.write_line(
                f"Unrecognized command '{key}' -- Press 'H' to get a list of available commands.", "red"
            )
        return True

    def run(self, reader: KeyReader) -> None:
        self.forwarding.input = False
        while True:
            if not self.handle_key(reader.read_key()):
                break


def _report_monitor_progress(percent: int, state) -> None:
    if isinstance(state, BaseException):
        console.print_exception(state, heading="File system monitor cycle failed.")
        log_event("monitor_error", type=type(state).__name__, error=str(state))


def execute_monitor(settings: DeployConfig, reader: Optional[KeyReader] = None) -> int:
    settings.validate_monitor()
    print_options(settings, "Monitor mode starting", monitor=True)

    remote = RemoteSession(settings)
    forwarding = ForwardingState()
    shell = ShellDriver(remote, forwarding)
    fs_monitor = FileSystemMonitor(on_progress=_report_monitor_progress)
    try:
        remote.ensure_connected()
        # Shell stream carries the post-deployment command's output.
        shell.open()
        orchestrator = DeploymentOrchestrator(remote, settings, shell=shell, forwarding=forwarding)

        if settings.POLL_ENABLED:
            fs_monitor.subscribe(orchestrator.handle_change)
            fs_monitor.start(settings.SOURCE_PATH, settings.POLL_INTERVAL)
            console.write_line("File System Monitor is now running.")
            console.write_line("Writing a new monitor file will trigger a new deployment.")
        else:
            console.write_line("File System Monitor is disabled. Press N to deploy.")
        log_event("monitor_started", source=settings.SOURCE_PATH, poll=settings.POLL_ENABLED)
        console.write_line("Press H for help!")
        console.write_line("Ground Control to Major Tom: Have a nice trip in space!.", "dark_cyan")

        with reader or KeyReader() as keys:
            MonitorKeyLoop(orchestrator, shell, forwarding).run(keys)
    finally:
        console.write_line()
        fs_monitor.stop()
        console.write_line("File System monitor was stopped.")
        shell.close()
        remote.close()
        console.write_line("SSH and SFTP clients disconnected.")
        log_event("monitor_stopped", source=settings.SOURCE_PATH)
        console.write_line("Application will exit now.")
    return 0
