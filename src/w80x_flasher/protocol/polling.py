"""
Bounded polling on the shared serial handle.

Both loops count iterations of ``read + sleep(interval)`` instead of measuring
wall-clock time. The nominal budget is ``wait_times * interval``; slow reads
stretch it. The sleep callable is injectable so tests run without delays.
"""

import logging
import time
from typing import Callable

from w80x_flasher.config import BUSY_INTERVAL, READ_INTERVAL, WAIT_TIMES
from w80x_flasher.errors import ChannelBusy, ProtocolViolation, ReplyTimeout
from w80x_flasher.protocol.status import StatusCode

logger = logging.getLogger(__name__)


class Poller:
    """wait-busy / wait-read primitives shared by the opcode and bulk engines."""

    def __init__(
        self,
        transport,
        wait_times: int = WAIT_TIMES,
        busy_interval: float = BUSY_INTERVAL,
        read_interval: float = READ_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if wait_times < 1:
            raise ValueError("wait_times must be >= 1")
        self.transport = transport
        self.wait_times = wait_times
        self.busy_interval = busy_interval
        self.read_interval = read_interval
        self.sleep = sleep

    def wait_busy(self) -> None:
        """
        Poll single bytes until the chip reports 'C' (idle).

        Raises:
            ChannelBusy: If no 'C' arrives within ``wait_times`` polls
        """
        for _ in range(self.wait_times):
            value = self.transport.read(1)
            if value and value[0] == StatusCode.COMPLETE:
                return
            self.sleep(self.busy_interval)

        raise ChannelBusy(
            f"Chip not ready after {self.wait_times} polls "
            f"(~{self.wait_times * self.busy_interval:.1f}s)"
        )

    def wait_read(self, length: int) -> bytes:
        """
        Collect exactly ``length`` reply bytes.

        The idle counter restarts whenever any byte arrives, so the bound is
        on silence, not on the total reply time.

        Raises:
            ReplyTimeout: If the line stays silent for ``wait_times`` polls
        """
        buffer = bytearray()
        idle = 0
        while idle < self.wait_times:
            chunk = self.transport.read(length - len(buffer))
            if chunk:
                buffer.extend(chunk)
                idle = 0
                if len(buffer) > length:
                    raise ProtocolViolation(
                        f"Transport returned {len(buffer)} bytes for a {length}-byte read"
                    )
            if len(buffer) == length:
                return bytes(buffer)
            self.sleep(self.read_interval)
            idle += 1

        raise ReplyTimeout(
            f"Reply incomplete: got {len(buffer)}/{length} bytes "
            f"after {self.wait_times} idle polls"
        )
