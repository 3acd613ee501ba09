import os
import stat
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import paramiko

from sshdeploy.config import (
    CONNECT_TIMEOUT, KEEPALIVE_INTERVAL, TERMINAL_NAME, DEFAULT_TERMINAL_WIDTH,
    DEFAULT_TERMINAL_HEIGHT, REMOTE_SEPARATOR, DeployConfig
)
from sshdeploy.utils import log_event
from sshdeploy import console


@dataclass
class CommandResult:
    command: str
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass
class RemoteEntry:
    name: str
    full_name: str
    is_directory: bool


def join_remote(parent: str, name: str) -> str:
    if parent.endswith(REMOTE_SEPARATOR):
        return parent + name
    return parent + REMOTE_SEPARATOR + name


class RemoteSession:
    """One SSH connection carrying the command service, SFTP and shell channels."""

    def __init__(self, settings: DeployConfig):
        self.settings = settings
        self.client: Optional[paramiko.SSHClient] = None
        self.sftp: Optional[paramiko.SFTPClient] = None
        self.connected_at: Optional[datetime] = None
        self.lock = threading.RLock()

    @property
    def address(self) -> str:
        return f"{self.settings.SSH_HOST}:{self.settings.SSH_PORT}"

    def connect(self) -> None:
        with self.lock:
            self.close()
            client = paramiko.SSHClient()
            if self.settings.SSH_VERIFY_HOST_KEY:
                client.load_system_host_keys()
            else:
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            connect_kwargs = {
                "hostname": self.settings.SSH_HOST,
                "port": self.settings.SSH_PORT,
                "username": self.settings.SSH_USER,
                "timeout": CONNECT_TIMEOUT,
                "allow_agent": True,
                "look_for_keys": True,
            }
            if self.settings.SSH_PASSWORD:
                connect_kwargs["password"] = self.settings.SSH_PASSWORD
            if self.settings.SSH_KEY_PATH:
                connect_kwargs["key_filename"] = self.settings.SSH_KEY_PATH
                if self.settings.SSH_KEY_PASSPHRASE:
                    connect_kwargs["passphrase"] = self.settings.SSH_KEY_PASSPHRASE

            console.write_line(f"Connecting to host {self.address} via SSH.")
            client.connect(**connect_kwargs)

            transport = client.get_transport()
            if transport:
                transport.set_keepalive(KEEPALIVE_INTERVAL)

            self.client = client
            console.write_line(f"Connecting to host {self.address} via SFTP.")
            self.sftp = client.open_sftp()
            self.connected_at = datetime.now()
            log_event("connected", host=self.settings.SSH_HOST, port=self.settings.SSH_PORT)

    def is_alive(self) -> bool:
        if not self.client or not self.sftp:
            return False
        try:
            transport = self.client.get_transport()
            if not transport or not transport.is_active():
                return False
            channel = self.sftp.get_channel()
            return bool(channel is not None and not channel.closed)
        except Exception:
            return False

    def ensure_connected(self) -> None:
        with self.lock:
            if self.is_alive():
                return
            if self.client is not None:
                log_event("reconnecting", host=self.settings.SSH_HOST, port=self.settings.SSH_PORT)
            self.connect()

    # ========= Command service =========
    def run_command(self, command: str) -> CommandResult:
        self.ensure_connected()
        stdin, stdout, stderr = self.client.exec_command(command)
        try:
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        finally:
            stdin.close()
        log_event("command", command=command, exit_status=exit_status)
        return CommandResult(command=command, exit_status=exit_status, stdout=out, stderr=err)

    # ========= File-transfer service =========
    def exists(self, path: str) -> bool:
        self.ensure_connected()
        try:
            self.sftp.stat(path)
            return True
        except FileNotFoundError:
            return False

    def is_directory(self, path: str) -> bool:
        self.ensure_connected()
        try:
            attributes = self.sftp.stat(path)
        except FileNotFoundError:
            return False
        return stat.S_ISDIR(attributes.st_mode or 0)

    def list_directory(self, path: str) -> List[RemoteEntry]:
        self.ensure_connected()
        return [
            RemoteEntry(
                name=item.filename,
                full_name=join_remote(path, item.filename),
                is_directory=stat.S_ISDIR(item.st_mode or 0),
            )
            for item in self.sftp.listdir_attr(path)
        ]

    def create_directory(self, path: str) -> None:
        self.ensure_connected()
        self.sftp.mkdir(path)

    def delete(self, entry: RemoteEntry) -> None:
        self.ensure_connected()
        if entry.is_directory:
            self.sftp.rmdir(entry.full_name)
        else:
            self.sftp.remove(entry.full_name)

    def upload(self, local_path: str, remote_path: str) -> None:
        self.ensure_connected()
        with open(local_path, "rb") as handle:
            self.sftp.putfo(handle, remote_path, file_size=os.fstat(handle.fileno()).st_size)

    # ========= Pseudo-terminal =========
    def open_shell(
        self,
        width: int = DEFAULT_TERMINAL_WIDTH,
        height: int = DEFAULT_TERMINAL_HEIGHT,
    ) -> paramiko.Channel:
        self.ensure_connected()
        channel = self.client.invoke_shell(term=TERMINAL_NAME, width=width, height=height)
        log_event("shell_opened", term=TERMINAL_NAME, width=width, height=height)
        return channel

    def close(self) -> None:
        try:
            if self.sftp:
                self.sftp.close()
        except Exception:
            pass
        self.sftp = None

        try:
            if self.client:
                self.client.close()
        except Exception:
            pass
        self.client = None
