"""Tests for opcode frame construction and the transaction engine."""

import struct

import pytest

from w80x_flasher.errors import ChannelBusy, ProtocolViolation, ReplyTimeout
from w80x_flasher.protocol.checksum import crc16_ccitt_false
from w80x_flasher.protocol.opcode import (
    FRAME_SIGN,
    Opcode,
    OpcodeEngine,
    build_frame,
    decode_frame,
)
from w80x_flasher.protocol.polling import Poller


def make_engine(transport, sleep, wait_times=5):
    poller = Poller(transport, wait_times=wait_times, sleep=sleep)
    return OpcodeEngine(transport, poller)


class TestBuildFrame:
    """Frame layout: 0x21 | length | 0x00 | crc le16 | opcode le32 | params."""

    def test_header_and_opcode_field(self) -> None:
        """Header bytes and the little-endian opcode field."""
        frame = build_frame(Opcode.GET_ROM_VERSION)
        assert len(frame) == 9
        assert frame[0] == FRAME_SIGN
        assert frame[1] == 0x06
        assert frame[2] == 0x00
        assert frame[5:9] == b"\x3e\x00\x00\x00"

    def test_checksum_covers_opcode_and_params_only(self) -> None:
        """CRC is computed over opcode + params, not the header."""
        params = struct.pack("<HH", 0, 2)
        frame = build_frame(Opcode.ERASE_FLASH, params)
        (checksum,) = struct.unpack("<H", frame[3:5])
        assert checksum == crc16_ccitt_false(frame[5:])
        assert frame[9:] == params

    def test_sizes_follow_declared_length(self) -> None:
        """Every frame is 3 + declared length bytes."""
        for opcode in Opcode:
            params = bytes(opcode.param_length)
            assert len(build_frame(opcode, params)) == 3 + opcode.length

    def test_param_lengths(self) -> None:
        """Parameter sizes derived from the declared lengths."""
        assert Opcode.SET_SPEED.param_length == 4
        assert Opcode.ERASE_FLASH.param_length == 4
        assert Opcode.SET_BT_MAC.param_length == 8
        assert Opcode.SET_GAIN.param_length == 84
        assert Opcode.REBOOT.param_length == 0

    def test_wrong_param_length_raises(self) -> None:
        """A wrong-size parameter block is a ValueError."""
        with pytest.raises(ValueError):
            build_frame(Opcode.SET_SPEED, b"\x00")
        with pytest.raises(ValueError):
            build_frame(Opcode.GET_BT_MAC, b"\x00")

    def test_decode_frame_rejects_bad_checksum(self) -> None:
        """Decoding checks the CRC field."""
        frame = bytearray(build_frame(Opcode.GET_FLASH_ID))
        decoded = decode_frame(bytes(frame))
        assert decoded.opcode == 0x3C
        assert decoded.params == b""

        frame[3] ^= 0xFF
        with pytest.raises(ProtocolViolation):
            decode_frame(bytes(frame))

    def test_from_code(self) -> None:
        """Lookup by numeric id."""
        assert Opcode.from_code(0x3F) is Opcode.REBOOT
        with pytest.raises(ValueError):
            Opcode.from_code(0x30)


class TestOpcodeEngine:
    """Flush, wait for idle, flush, send, collect the reply."""

    def test_transact_returns_reply(self, scripted, no_sleep) -> None:
        """Reply bytes are returned after a single frame write."""
        transport = scripted([b"C", b"R:8"])
        engine = make_engine(transport, no_sleep)

        assert engine.transact(Opcode.GET_ROM_VERSION) == b"R:8"
        assert transport.writes == [build_frame(Opcode.GET_ROM_VERSION)]
        assert transport.flushes == 2

    def test_busy_poll_skips_other_bytes(self, scripted, no_sleep, sleeps) -> None:
        """Silence and non-'C' bytes keep the busy poll going."""
        transport = scripted([b"", b"x", b"C", b"C"])
        engine = make_engine(transport, no_sleep)

        assert engine.transact(Opcode.GET_ERROR) == b"C"
        assert sleeps == [engine.poller.busy_interval] * 2

    def test_reply_collected_from_partial_reads(self, scripted, no_sleep) -> None:
        """A reply split across reads is reassembled."""
        transport = scripted([b"C", b"MAC:", b"", b"286DCD000001", b"\r\n"])
        engine = make_engine(transport, no_sleep)

        assert engine.transact(Opcode.GET_BT_MAC) == b"MAC:286DCD000001\r\n"

    def test_channel_busy_sends_nothing(self, scripted, no_sleep, sleeps) -> None:
        """No idle byte within the poll budget means no frame is sent."""
        transport = scripted([])
        engine = make_engine(transport, no_sleep, wait_times=5)

        with pytest.raises(ChannelBusy):
            engine.transact(Opcode.GET_FLASH_ID)
        assert transport.writes == []
        assert transport.read_calls == 5
        assert len(sleeps) == 5

    def test_reply_timeout(self, scripted, no_sleep) -> None:
        """An incomplete reply times out."""
        transport = scripted([b"C", b"FI"])
        engine = make_engine(transport, no_sleep, wait_times=3)

        with pytest.raises(ReplyTimeout):
            engine.transact(Opcode.GET_FLASH_ID)

    def test_idle_counter_resets_on_data(self, scripted, no_sleep) -> None:
        """Silence is bounded per gap, not over the whole reply."""
        transport = scripted([b"a", b"", b"", b"b", b"", b"", b"c"])
        poller = Poller(transport, wait_times=4, sleep=no_sleep)

        assert poller.wait_read(3) == b"abc"

    def test_reboot_reads_no_reply(self, scripted, no_sleep) -> None:
        """Reboot returns as soon as the frame is written."""
        transport = scripted([b"C", b"leftover"])
        engine = make_engine(transport, no_sleep)

        assert engine.transact(Opcode.REBOOT) == b""
        assert transport.read_calls == 1
        assert transport.writes == [build_frame(Opcode.REBOOT)]

    def test_bad_params_rejected_before_io(self, scripted, no_sleep) -> None:
        """Parameter size errors surface before the port is touched."""
        transport = scripted([b"C", b"C"])
        engine = make_engine(transport, no_sleep)

        with pytest.raises(ValueError):
            engine.transact(Opcode.SET_BT_MAC, b"\x00" * 3)
        assert transport.writes == []
        assert transport.flushes == 0
        assert transport.read_calls == 0

    def test_custom_checksum_seed(self, scripted, no_sleep) -> None:
        """The frame CRC seed is configurable."""
        transport = scripted([b"C", b"C"])
        engine = OpcodeEngine(transport, Poller(transport, sleep=no_sleep), checksum_init=0x0000)

        engine.transact(Opcode.GET_ERROR)
        frame = transport.writes[0]
        assert decode_frame(frame, checksum_init=0x0000).opcode == 0x3B
        with pytest.raises(ProtocolViolation):
            decode_frame(frame)
