"""Tests for the command line interface (simulated chip)."""

import json

import pytest
import typer
from typer.testing import CliRunner

from w80x_flasher.cli import app, parse_erase, parse_gain, parse_mac

runner = CliRunner()

MISSING_PORT = "/dev/w80x-does-not-exist"


@pytest.fixture
def firmware(tmp_path):
    path = tmp_path / "w800.fls"
    path.write_bytes(bytes(range(256)) * 8)
    return path


class TestOptionParsers:
    """Option callbacks turn ValidationError into typer.BadParameter."""

    def test_parse_mac(self) -> None:
        """MAC callback passes valid values and rejects short ones."""
        assert parse_mac(None) is None
        assert parse_mac("AA:BB:CC:DD:EE:FF") == "AA:BB:CC:DD:EE:FF"
        with pytest.raises(typer.BadParameter):
            parse_mac("AA:BB:CC")

    def test_parse_gain(self) -> None:
        """Gain callback requires 168 hex characters."""
        assert parse_gain("00" * 84) == "00" * 84
        with pytest.raises(typer.BadParameter):
            parse_gain("00")

    def test_parse_erase(self) -> None:
        """Erase callback requires offset:size."""
        assert parse_erase("0:0x1000") == "0:0x1000"
        with pytest.raises(typer.BadParameter):
            parse_erase("0x1000")


class TestProgramCommand:
    """The program command end to end against --simulate."""

    def test_info(self) -> None:
        """Chip information is printed in the summary."""
        result = runner.invoke(app, ["program", "--simulate", "--info"])
        assert result.exit_code == 0, result.output
        assert "28:6d:cd:00:00:01" in result.output
        assert "Session complete" in result.output

    def test_json_output(self) -> None:
        """--json prints one result object per step."""
        result = runner.invoke(app, ["program", "--simulate", "--info", "--erase", "0:8192", "--json"])
        assert result.exit_code == 0, result.output

        data = json.loads(result.stdout)
        assert [step["operation"] for step in data] == ["chip_info", "erase"]
        assert data[0]["metadata"]["chip"]["flash_id"] == "FID:0B,15"
        assert data[1]["metadata"]["blocks"] == 2

    def test_verbose_captures_wire_traffic(self) -> None:
        """--verbose keeps the DEBUG frame and reply lines in the step logs."""
        result = runner.invoke(app, ["program", "--simulate", "--info", "--verbose", "--json"])
        assert result.exit_code == 0, result.output

        logs = json.loads(result.stdout)[0]["logs"]
        assert any(line.startswith("DEBUG") and "reply:" in line for line in logs)

    def test_default_hides_wire_traffic(self) -> None:
        """Without --verbose only INFO and above are captured."""
        result = runner.invoke(app, ["program", "--simulate", "--info", "--json"])
        assert result.exit_code == 0, result.output

        logs = json.loads(result.stdout)[0]["logs"]
        assert logs
        assert not any(line.startswith("DEBUG") for line in logs)

    def test_flash_and_reset(self, firmware) -> None:
        """Flash reports size and packet count, then the chip reboots."""
        result = runner.invoke(
            app,
            ["program", "--simulate", "--flash", str(firmware), "--reset", "--json"],
        )
        assert result.exit_code == 0, result.output

        data = json.loads(result.stdout)
        assert [step["operation"] for step in data] == ["flash", "reset"]
        assert data[0]["bytes_len"] == 2048
        assert data[0]["metadata"]["packets"] == 2

    def test_set_macs_and_gain(self) -> None:
        """MAC, gain and speed options all run in one session."""
        result = runner.invoke(
            app,
            [
                "program", "--simulate",
                "--bt", "AA:BB:CC:DD:EE:FF",
                "--wifi", "11:22:33:44:55:66",
                "--gain", "0A" * 84,
                "--speed", "2000000",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "aa:bb:cc:dd:ee:ff" in result.output

    def test_invalid_mac_is_usage_error(self) -> None:
        """A malformed MAC exits with status 2."""
        result = runner.invoke(app, ["program", "--simulate", "--bt", "AA:BB"])
        assert result.exit_code == 2

    def test_invalid_erase_is_usage_error(self) -> None:
        """A zero-size erase exits with status 2."""
        result = runner.invoke(app, ["program", "--simulate", "--erase", "0:0"])
        assert result.exit_code == 2

    def test_missing_firmware_is_usage_error(self, tmp_path) -> None:
        """A missing image file exits with status 2."""
        result = runner.invoke(app, ["program", "--simulate", "--flash", str(tmp_path / "nope.bin")])
        assert result.exit_code == 2

    def test_empty_firmware_is_usage_error(self, tmp_path) -> None:
        """An empty image file exits with status 2."""
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")
        result = runner.invoke(app, ["program", "--simulate", "--flash", str(path)])
        assert result.exit_code == 2

    def test_nothing_to_do(self) -> None:
        """No step options exits with status 2."""
        result = runner.invoke(app, ["program", "--simulate"])
        assert result.exit_code == 2

    def test_unreachable_port_fails(self) -> None:
        """A port that cannot be opened exits 1 with the failed step summary."""
        result = runner.invoke(app, ["program", "--port", MISSING_PORT, "--info"])
        assert result.exit_code == 1
        assert "[FAILED] open" in result.output

    def test_port_from_environment(self) -> None:
        """W80X_PORT supplies the default port."""
        result = runner.invoke(app, ["program", "--info"], env={"W80X_PORT": MISSING_PORT})
        assert result.exit_code == 1
        assert MISSING_PORT in result.output


class TestPortsCommand:
    """Serial port listing."""

    def test_no_ports(self, monkeypatch) -> None:
        """An empty port list prints a warning."""
        import serial.tools.list_ports

        monkeypatch.setattr(serial.tools.list_ports, "comports", lambda: [])
        result = runner.invoke(app, ["ports"])
        assert result.exit_code == 0
        assert "No serial ports found" in result.output
