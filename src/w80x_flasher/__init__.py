"""
W80x Flasher - secboot programmer for W800/W801/W806 style Wi-Fi/BT chips

Enter secboot, read chip identity, erase flash, write MACs and RF gain, and
stream firmware over a serial line.
"""

__version__ = "0.1.0"

from w80x_flasher.errors import W80xError
from w80x_flasher.protocol import W80xTransport, W80xProtocol
from w80x_flasher.simulator import W80xSimulator

__all__ = [
    "W80xTransport",
    "W80xProtocol",
    "W80xSimulator",
    "W80xError",
    "__version__",
]
