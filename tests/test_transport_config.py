"""Tests for the serial transport guards, configuration and result objects."""

import pytest

from w80x_flasher.config import DEFAULT_CONFIG, ProgrammerConfig
from w80x_flasher.core.results import OperationResult
from w80x_flasher.errors import TransportError
from w80x_flasher.protocol import W80xTransport

MISSING_PORT = "/dev/w80x-does-not-exist"


class TestTransport:
    """Serial errors surface as TransportError."""

    def test_open_missing_port(self) -> None:
        """Opening a nonexistent device fails cleanly."""
        transport = W80xTransport(MISSING_PORT)
        with pytest.raises(TransportError):
            transport.open()
        assert not transport.is_open

    def test_io_requires_open_port(self) -> None:
        """Every I/O call refuses to run on a closed port."""
        transport = W80xTransport(MISSING_PORT)
        with pytest.raises(TransportError):
            transport.write(b"\x1b")
        with pytest.raises(TransportError):
            transport.read(1)
        with pytest.raises(TransportError):
            transport.set_reset(True)
        with pytest.raises(TransportError):
            transport.flush_output()

    def test_close_without_open_is_noop(self) -> None:
        """Closing a never-opened transport does nothing."""
        W80xTransport(MISSING_PORT).close()


class TestConfig:
    """Protocol tunables."""

    def test_nominal_timeouts(self) -> None:
        """Nominal budgets are iterations times interval."""
        config = ProgrammerConfig(wait_times=10, busy_interval=0.5, read_interval=0.25)
        assert config.busy_timeout == 5.0
        assert config.reply_timeout == 2.5

    def test_defaults(self) -> None:
        """Default speed, retry budget and frame CRC seed."""
        assert DEFAULT_CONFIG.baudrate == 115200
        assert DEFAULT_CONFIG.max_retries == 20
        assert DEFAULT_CONFIG.checksum_init == 0xFFFF


class TestOperationResult:
    """Result objects shared by the CLI and library callers."""

    def test_add_error_marks_failure(self) -> None:
        """An error flips ok and shows up in the summary."""
        result = OperationResult.success("erase", port="COM7")
        result.add_error("chip returned [0x53] Command parameter error")
        assert not result.ok
        assert "[FAILED] erase" in result.to_summary()
        assert result.to_dict()["errors"] == ["chip returned [0x53] Command parameter error"]

    def test_summary_lists_hash_and_warnings(self) -> None:
        """Summary shows size, hash prefix and warnings."""
        result = OperationResult.success("flash", bytes_len=2500)
        result.hashes["sha256"] = "ab" * 32
        result.add_warning("2 packet(s) were retransmitted")
        summary = result.to_summary()
        assert "[SUCCESS] flash" in summary
        assert "Bytes: 2,500" in summary
        assert "2 packet(s) were retransmitted" in summary
