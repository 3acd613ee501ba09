import time
import posixpath
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sshdeploy.config import DeployConfig
from sshdeploy.remote import CommandResult
from sshdeploy.snapshot import ChangeEvent, ChangeKind, path_key
from sshdeploy.sync import RemotePathSynchronizer, remote_path_for, select_upload_files
from sshdeploy.terminal import ForwardingState
from sshdeploy.utils import describe_exception, log_debug, log_event
from sshdeploy import console

TRIGGER_KINDS = (ChangeKind.ADDED, ChangeKind.MODIFIED)


@dataclass
class DeploymentRun:
    sequence_number: int
    started_at: float
    locked: bool = True


@dataclass
class DeploymentReport:
    sequence_number: int
    success: bool
    elapsed_seconds: float
    files_uploaded: int = 0
    error: Optional[str] = None


class DeploymentOrchestrator:
    """Runs deployment cycles one at a time: pre-command, target prep, upload, post-command.

    A trigger that arrives while a cycle is running is dropped, not queued.
    When a shell driver is attached (monitor mode) the post-command is written
    into the interactive shell so the deployed program's output is visible.
    """

    def __init__(
        self,
        remote,
        settings: DeployConfig,
        shell=None,
        forwarding: Optional[ForwardingState] = None,
    ):
        self.remote = remote
        self.settings = settings
        self.shell = shell
        self.forwarding = forwarding or (shell.forwarding if shell is not None else ForwardingState())
        self.synchronizer = RemotePathSynchronizer(remote)

        self.deployment_number = 1
        self.current_run: Optional[DeploymentRun] = None
        self._guard = threading.Lock()

    @property
    def is_deploying(self) -> bool:
        return self._guard.locked()

    def is_trigger(self, event: ChangeEvent) -> bool:
        if event.kind not in TRIGGER_KINDS:
            return False
        return path_key(event.path) == path_key(self.settings.MONITOR_FILE)

    def handle_change(self, event: ChangeEvent) -> Optional[DeploymentReport]:
        if not self.is_trigger(event):
            return None
        log_debug(f"trigger detected: {event}")
        return self.deploy()

    def deploy(self) -> Optional[DeploymentReport]:
        console.write_line()
        if not self._guard.acquire(blocking=False):
            console.write_line("WARNING: Deployment already in progress. Deployment will not occur.", "dark_yellow")
            log_event("deployment_dropped", running=self.current_run.sequence_number if self.current_run else None)
            return None

        run = DeploymentRun(sequence_number=self.deployment_number, started_at=time.time())
        self.current_run = run
        stopwatch = time.perf_counter()
        report = DeploymentReport(sequence_number=run.sequence_number, success=False, elapsed_seconds=0.0)

        try:
            if self.shell is not None:
                self.forwarding.output = False
            self._print_deployment_number(run)
            log_event("deployment_started", sequence=run.sequence_number, target=self.settings.TARGET_PATH)
            self.run_pre_command()
            self.create_target_path()
            self.prepare_target_path()
            report.files_uploaded = self.upload_files()
            self.run_post_command()
            report.success = True
        except Exception as exc:
            details = describe_exception(exc)
            report.error = f"{details['type']}: {details['message']}"
            console.print_exception(exc)
            log_event("deployment_failed", sequence=run.sequence_number, **details)
        finally:
            run.locked = False
            self.current_run = None
            self.deployment_number += 1
            report.elapsed_seconds = round(time.perf_counter() - stopwatch, 2)
            console.write_line(f"    Finished deployment in {report.elapsed_seconds} seconds.", "green")
            if self.shell is not None:
                self.forwarding.output = True
            self._guard.release()

        log_event(
            "deployment_finished",
            sequence=report.sequence_number,
            success=report.success,
            elapsed=report.elapsed_seconds,
            files=report.files_uploaded,
        )
        return report

    def _print_deployment_number(self, run: DeploymentRun) -> None:
        stamp = datetime.fromtimestamp(run.started_at).strftime("%A, %d %B %Y %H:%M:%S")
        console.write_line(f"    Starting deployment ID {run.sequence_number} - {stamp}", "green")

    def _execute(self, command: str) -> CommandResult:
        console.write_line("    Executing SSH client command.", "green")
        result = self.remote.run_command(command)
        console.write_line(f"    SSH TX: {command}", "dark_yellow")
        console.write_line(f"    SSH RX: [{result.exit_status}] {result.stdout.rstrip()}", "dark_yellow")
        if not result.ok:
            console.error_line(f"    Error {result.exit_status}")
            if result.stderr.strip():
                console.error_line(f"    {result.stderr.rstrip()}")
        return result

    def run_pre_command(self) -> Optional[CommandResult]:
        command = self.settings.PRE_COMMAND
        if not command or not command.strip():
            return None
        return self._execute(command)

    def run_post_command(self) -> Optional[CommandResult]:
        command = self.settings.POST_COMMAND
        if not command or not command.strip():
            return None
        if self.shell is not None:
            self.forwarding.output = True
            self.shell.run_command(command)
            return None
        return self._execute(command)

    def create_target_path(self) -> None:
        target = self.settings.TARGET_PATH
        if self.remote.is_directory(target):
            return
        console.write_line(f"    Target Path '{target}' does not exist. -- Will attempt to create.", "green")
        self.synchronizer.ensure_directory(target)
        console.write_line(f"    Target Path '{target}' created successfully.", "green")

    def prepare_target_path(self) -> None:
        if not self.settings.CLEAN_TARGET:
            return
        target = self.settings.TARGET_PATH
        console.write_line(f"    Cleaning Target Path '{target}'", "green")
        failures = self.synchronizer.delete_tree(target)
        if failures:
            console.write_line(f"    {len(failures)} entries could not be deleted.", "dark_yellow")

    def upload_files(self) -> int:
        source = self.settings.SOURCE_PATH
        target = self.settings.TARGET_PATH
        files = select_upload_files(source, self.settings.EXCLUDE_SUFFIXES)
        console.write_line(f"    Deploying {len(files)} files.", "green")

        for local_path in files:
            remote_path = remote_path_for(local_path, source, target)
            self.synchronizer.ensure_directory(posixpath.dirname(remote_path))
            self.remote.upload(local_path, remote_path)
            log_debug(f"uploaded {local_path} -> {remote_path}")
        return len(files)
