"""Tests for ICMP probing."""

import socket
import subprocess
import threading
from unittest.mock import MagicMock, patch

import pytest

from conftest import ScriptedEcho
from wakewatch.core.errors import EchoError, ProbeCancelled, ProbeSetupError
from wakewatch.core.models import DeviceStatus
from wakewatch.core.prober import Prober, SubprocessEcho, Verdict


class TestVerdict:
    """Tests for Verdict status derivation and summaries."""

    def test_no_replies_is_offline(self) -> None:
        assert Verdict(packets_transmitted=3, packets_received=0).status is DeviceStatus.OFFLINE

    def test_any_reply_is_online(self) -> None:
        assert Verdict(packets_transmitted=3, packets_received=1).status is DeviceStatus.ONLINE

    def test_received_decides_regardless_of_transmitted(self) -> None:
        assert Verdict(packets_transmitted=0, packets_received=2).status is DeviceStatus.ONLINE

    def test_average_rtt(self) -> None:
        verdict = Verdict(3, 2, (0.010, 0.014))
        assert verdict.average_rtt == pytest.approx(0.012)

    def test_average_rtt_none_without_samples(self) -> None:
        assert Verdict(3, 0).average_rtt is None

    def test_online_summary(self) -> None:
        assert Verdict(3, 2, (0.010, 0.014)).summary() == (
            "Online (2/3 packets, avg RTT: 12.00 ms)"
        )

    def test_offline_summary_with_error(self) -> None:
        verdict = Verdict(3, 0, (), last_error="Request timed out")
        assert verdict.summary() == "Offline (0/3 packets received). (Request timed out)"

    def test_offline_summary_without_error(self) -> None:
        assert Verdict(3, 0).summary() == "Offline (0/3 packets received)."


class TestProber:
    """Tests for Prober.run."""

    def test_two_of_three_replies(self) -> None:
        echo = ScriptedEcho([0.010, EchoError("Request timed out"), 0.014])
        verdict = Prober("192.168.1.20", count=3, interval=0.01, echo=echo).run()

        assert verdict.packets_transmitted == 3
        assert verdict.packets_received == 2
        assert verdict.status is DeviceStatus.ONLINE
        assert "avg RTT: 12.00 ms" in verdict.summary()

    def test_all_timeouts_offline_with_last_error(self) -> None:
        echo = ScriptedEcho([EchoError("first"), EchoError("second"), EchoError("last")])
        verdict = Prober("192.168.1.20", count=3, interval=0.01, echo=echo).run()

        assert verdict.status is DeviceStatus.OFFLINE
        assert verdict.last_error == "last"

    def test_count_controls_attempts(self) -> None:
        echo = ScriptedEcho()
        verdict = Prober("192.168.1.20", count=5, interval=0.01, echo=echo).run()

        assert verdict.packets_transmitted == 5
        assert echo.calls == ["192.168.1.20"] * 5

    @patch("wakewatch.core.prober.socket.getaddrinfo")
    def test_unresolvable_host_is_setup_error(self, mock_gai: MagicMock) -> None:
        mock_gai.side_effect = socket.gaierror("Name or service not known")
        echo = ScriptedEcho()

        with pytest.raises(ProbeSetupError):
            Prober("nope.invalid", interval=0.01, echo=echo).run()
        assert echo.calls == []

    def test_empty_host_is_setup_error(self) -> None:
        with pytest.raises(ProbeSetupError):
            Prober("", echo=ScriptedEcho()).run()

    def test_missing_ping_is_setup_error(self) -> None:
        with patch("wakewatch.core.prober.shutil.which", return_value=None):
            with pytest.raises(ProbeSetupError):
                Prober("127.0.0.1", echo=SubprocessEcho("no-such-ping")).run()

    def test_cancelled_before_start(self) -> None:
        cancel = threading.Event()
        cancel.set()
        echo = ScriptedEcho()

        with pytest.raises(ProbeCancelled):
            Prober("192.168.1.20", interval=0.01, echo=echo).run(cancel)
        assert echo.calls == []

    def test_cancelled_mid_attempt(self) -> None:
        gate = threading.Event()
        cancel = threading.Event()
        echo = ScriptedEcho(gate=gate)
        timer = threading.Timer(0.05, cancel.set)
        timer.start()

        with pytest.raises(ProbeCancelled):
            Prober("192.168.1.20", interval=0.01, echo=echo).run(cancel)
        assert len(echo.calls) == 1

    @pytest.mark.parametrize("count,interval", [(0, 0.8), (3, 0), (3, -1.0)])
    def test_invalid_parameters(self, count: int, interval: float) -> None:
        with pytest.raises(ValueError):
            Prober("192.168.1.20", count=count, interval=interval)


class TestSubprocessEcho:
    """Tests for the ping-binary echo transport."""

    def _proc(self, returncode: int, stdout: str = "", stderr: str = "") -> MagicMock:
        proc = MagicMock()
        proc.wait.return_value = returncode
        proc.poll.return_value = returncode
        proc.returncode = returncode
        proc.communicate.return_value = (stdout, stderr)
        return proc

    @patch("wakewatch.core.prober.subprocess.Popen")
    def test_parses_rtt(self, mock_popen: MagicMock) -> None:
        mock_popen.return_value = self._proc(
            0, "64 bytes from 192.168.1.20: icmp_seq=1 ttl=64 time=12.5 ms\n"
        )
        rtt = SubprocessEcho().echo("192.168.1.20", 0.8, threading.Event())

        assert rtt == pytest.approx(0.0125)
        cmd = mock_popen.call_args[0][0]
        assert cmd[0] == "ping"
        assert cmd[-1] == "192.168.1.20"
        assert ["-c", "1"] == cmd[2:4]

    @patch("wakewatch.core.prober.subprocess.Popen")
    def test_nonzero_exit_is_echo_error(self, mock_popen: MagicMock) -> None:
        mock_popen.return_value = self._proc(1, "", "")
        with pytest.raises(EchoError):
            SubprocessEcho().echo("192.168.1.20", 0.8, threading.Event())

    @patch("wakewatch.core.prober.subprocess.Popen")
    def test_timeout_kills_process(self, mock_popen: MagicMock) -> None:
        proc = MagicMock()
        proc.wait.side_effect = subprocess.TimeoutExpired("ping", 0.05)
        proc.poll.return_value = None
        proc.communicate.return_value = ("", "")
        mock_popen.return_value = proc

        with pytest.raises(EchoError, match="timed out"):
            SubprocessEcho().echo("192.168.1.20", 0.1, threading.Event())
        proc.kill.assert_called_once()

    @patch("wakewatch.core.prober.subprocess.Popen")
    def test_cancel_kills_process(self, mock_popen: MagicMock) -> None:
        proc = MagicMock()
        proc.poll.return_value = None
        proc.communicate.return_value = ("", "")
        mock_popen.return_value = proc
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ProbeCancelled):
            SubprocessEcho().echo("192.168.1.20", 0.8, cancel)
        proc.kill.assert_called_once()
