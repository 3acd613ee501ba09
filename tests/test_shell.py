from unittest.mock import MagicMock

import pytest

from sshdeploy.shell import ShellDriver
from sshdeploy.terminal import ForwardingState


def _idle_channel():
    channel = MagicMock()
    channel.closed = False
    channel.recv_ready.return_value = False
    channel.exit_status_ready.return_value = False
    return channel


@pytest.fixture
def driver():
    remote = MagicMock()
    remote.open_shell.return_value = _idle_channel()
    shell = ShellDriver(remote, ForwardingState(output=True))
    yield shell
    shell.close()


class TestShellDriver:
    def test_send_line_appends_crlf(self, driver):
        driver.channel = _idle_channel()
        driver.tail = "old output"

        driver.send_line("ls -la")

        driver.channel.sendall.assert_called_once_with(b"ls -la\r\n")
        assert driver.tail == ""

    def test_send_without_stream_raises(self, driver):
        with pytest.raises(RuntimeError):
            driver.send("x")

    def test_received_text_is_rendered_when_forwarding(self, driver, capsys):
        driver.receive(b"pi@raspberry:~ $ ")

        assert capsys.readouterr().out == "pi@raspberry:~ $ "

    def test_received_text_is_hidden_when_not_forwarding(self, driver, capsys):
        driver.forwarding.output = False
        driver.receive(b"quiet")

        assert capsys.readouterr().out == ""
        assert driver.tail == "quiet"

    def test_color_sequence_updates_state(self, driver):
        driver.receive(b"\x1b[41;33mwarn")

        assert driver.colors.foreground == "yellow"
        assert driver.colors.background == "red"

    def test_expect_strips_ansi(self, driver):
        driver.receive(b"exit\r\n\x1b[32mlogout\x1b[0m\r\n")

        assert driver.expect("logout", 0.5).strip().endswith("logout")

    def test_expect_times_out_with_empty_result(self, driver):
        driver.receive(b"still here")

        assert driver.expect("logout", 0.05) == ""

    def test_run_command_ignores_blank(self, driver):
        driver.run_command("  ")

        driver.remote.open_shell.assert_not_called()

    def test_run_command_reopens_closed_stream(self, driver):
        closed = _idle_channel()
        closed.closed = True
        driver.channel = closed

        driver.run_command("./app --serve")

        driver.remote.open_shell.assert_called_once()
        driver.channel.sendall.assert_called_once_with(b"./app --serve\r\n")

    def test_pump_stops_when_remote_exits(self, driver):
        channel = _idle_channel()
        channel.exit_status_ready.return_value = True
        driver.channel = channel

        assert driver.pump() is False

    def test_pump_feeds_buffered_data(self, driver, capsys):
        channel = _idle_channel()
        channel.recv_ready.return_value = True
        channel.recv.return_value = b"data"
        driver.channel = channel

        assert driver.pump() is True
        assert capsys.readouterr().out == "data"
