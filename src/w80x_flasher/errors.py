"""
Exception hierarchy for W80x programming sessions.

Every failure raised by the protocol engines derives from W80xError so callers
can stop a session on the first error without catching unrelated exceptions.
"""

from typing import Optional


class W80xError(Exception):
    """Base exception for all programmer errors."""


class TransportError(W80xError):
    """Serial port could not be opened, read or written."""


class ValidationError(W80xError, ValueError):
    """User supplied value is malformed (caught before any I/O)."""


class ChannelBusy(W80xError):
    """Chip never reported the idle status byte while polling."""


class ReplyTimeout(W80xError):
    """Reply did not complete before the idle poll budget ran out."""


class BootloaderUnreachable(W80xError):
    """Secboot banner was never observed."""


class RemoteError(W80xError):
    """Chip answered a command with a non-success status byte."""

    def __init__(self, status: int, operation: Optional[str] = None):
        from w80x_flasher.protocol.status import status_name

        self.status = status
        self.reason = status_name(status)
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}chip returned [0x{status:02X}] {self.reason}")


class RemoteCancelled(W80xError):
    """Chip cancelled the bulk transfer (CAN)."""


class ProtocolViolation(W80xError):
    """Unexpected or malformed bytes on the wire."""


class RetryExhausted(W80xError):
    """Packet was NAKed on every transmission attempt."""


class TransferIncomplete(W80xError):
    """End-of-transmission was not acknowledged."""
