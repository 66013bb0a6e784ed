"""Shared fixtures: a scripted serial transport for protocol tests."""

from typing import Iterable, List, Optional

import pytest

from w80x_flasher.errors import TransportError


class ScriptedTransport:
    """
    Stand-in for W80xTransport.

    ``reads`` is replayed chunk by chunk; an empty chunk is one silent poll.
    A chunk longer than the requested size is split and the rest kept for the
    next read. Flushes are counted but never drop scripted data.
    """

    def __init__(self, reads: Iterable[bytes] = (), fail_on_write: Optional[bytes] = None):
        self.reads: List[bytes] = [bytes(chunk) for chunk in reads]
        self.writes: List[bytes] = []
        self.resets: List[bool] = []
        self.baudrates: List[int] = []
        self.flushes = 0
        self.output_flushes = 0
        self.read_calls = 0
        self.fail_on_write = fail_on_write
        self.baudrate = 115200
        self.port = "SCRIPTED"

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def write(self, data: bytes) -> None:
        if self.fail_on_write is not None and data == self.fail_on_write:
            raise TransportError("write failed")
        self.writes.append(bytes(data))

    def read(self, size: int) -> bytes:
        self.read_calls += 1
        if not self.reads:
            return b""
        chunk = self.reads.pop(0)
        if len(chunk) > size:
            self.reads.insert(0, chunk[size:])
            chunk = chunk[:size]
        return chunk

    def flush_input(self) -> None:
        self.flushes += 1

    def flush_output(self) -> None:
        self.output_flushes += 1

    def set_reset(self, asserted: bool) -> None:
        self.resets.append(asserted)

    def set_baudrate(self, baudrate: int) -> None:
        self.baudrate = baudrate
        self.baudrates.append(baudrate)


@pytest.fixture
def sleeps() -> List[float]:
    """Collects requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def scripted():
    """Factory for ScriptedTransport instances."""
    return ScriptedTransport
