"""
W80x programming operations.

Thin orchestration over the opcode and bulk transfer engines. Every method is
independent and fails fast; the order of calls is up to the caller.

Example:
    transport = W80xTransport("/dev/ttyUSB0")
    transport.open()
    protocol = W80xProtocol(transport)
    protocol.enter_secboot()
    info = protocol.read_chip_info()
    protocol.flash_firmware(Path("firmware.img").read_bytes())
    protocol.reboot()
    transport.close()
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

from w80x_flasher.config import DEFAULT_CONFIG, ProgrammerConfig
from w80x_flasher.errors import RemoteError
from w80x_flasher.protocol.fields import (
    decode_text_reply,
    encode_erase_param,
    encode_gain_param,
    encode_mac_param,
    encode_speed_param,
    erase_block_count,
    format_mac_reply,
)
from w80x_flasher.protocol.opcode import Opcode, OpcodeEngine
from w80x_flasher.protocol.polling import Poller
from w80x_flasher.protocol.secboot import SecbootEntry
from w80x_flasher.protocol.status import is_complete, status_name
from w80x_flasher.protocol.xmodem import ACK, ProgressCallback, TransferSession, XmodemSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChipInfo:
    """Identity strings read from the chip."""

    bt_mac: str
    wifi_mac: str
    flash_id: str
    rom_version: str
    rf_gain: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class W80xProtocol:
    """High-level W80x operations sharing one open transport."""

    def __init__(
        self,
        transport,
        config: ProgrammerConfig = DEFAULT_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.config = config
        self.poller = Poller(
            transport,
            wait_times=config.wait_times,
            busy_interval=config.busy_interval,
            read_interval=config.read_interval,
            sleep=sleep,
        )
        self.opcodes = OpcodeEngine(transport, self.poller, checksum_init=config.checksum_init)
        self.xmodem = XmodemSender(transport, self.poller, max_retries=config.max_retries)
        self.secboot = SecbootEntry(
            transport,
            attempts=config.secboot_attempts,
            escape_interval=config.escape_interval,
            reset_settle=config.reset_settle,
            banner_settle=config.banner_settle,
            sleep=sleep,
        )

    def _expect_complete(self, opcode: Opcode, reply: bytes) -> None:
        state = reply[0]
        logger.info(f"  [0x{state:02X}]: {status_name(state)}")
        if not is_complete(state):
            raise RemoteError(state, opcode.name)

    def enter_secboot(self) -> str:
        """Reset into secboot; returns the banner."""
        return self.secboot.enter()

    def read_chip_info(self) -> ChipInfo:
        """Read MACs, flash id, ROM version and RF gain; first failure aborts."""
        logger.info("Reading chip information...")
        bt_mac = format_mac_reply(self.opcodes.transact(Opcode.GET_BT_MAC))
        wifi_mac = format_mac_reply(self.opcodes.transact(Opcode.GET_WIFI_MAC))
        flash_id = decode_text_reply(self.opcodes.transact(Opcode.GET_FLASH_ID))
        rom_version = decode_text_reply(self.opcodes.transact(Opcode.GET_ROM_VERSION))
        rf_gain = decode_text_reply(self.opcodes.transact(Opcode.GET_GAIN))

        info = ChipInfo(
            bt_mac=bt_mac,
            wifi_mac=wifi_mac,
            flash_id=flash_id,
            rom_version=rom_version,
            rf_gain=rf_gain,
        )
        logger.info(f"  BT MAC: {info.bt_mac}")
        logger.info(f"  WIFI MAC: {info.wifi_mac}")
        logger.info(f"  Flash: {info.flash_id}")
        logger.info(f"  ROM: {info.rom_version}")
        logger.debug(f"  RF GAIN: {info.rf_gain}")
        return info

    def read_last_error(self) -> int:
        """Ask the chip for its last status byte."""
        return self.opcodes.transact(Opcode.GET_ERROR)[0]

    def erase_flash(self, index: int, size: int) -> int:
        """
        Erase ``ceil(size / 4096)`` blocks starting at ``index``.

        Returns:
            Number of blocks requested
        """
        params = encode_erase_param(index, size)
        count = erase_block_count(size)
        logger.info(f"Erasing {count} blocks from index 0x{index:04X}...")
        self._expect_complete(Opcode.ERASE_FLASH, self.opcodes.transact(Opcode.ERASE_FLASH, params))
        return count

    def set_serial_speed(self, speed: int) -> None:
        """
        Ask the chip to switch line speed. The chip answers ACK, not 'C'.

        The host side is not reconfigured here; see ``change_speed``.
        """
        params = encode_speed_param(speed)
        logger.info(f"Setting chip speed to {speed}...")
        state = self.opcodes.transact(Opcode.SET_SPEED, params)[0]
        logger.info(f"  [0x{state:02X}]: {'OK' if state == ACK else 'Failed'}")
        if state != ACK:
            raise RemoteError(state, Opcode.SET_SPEED.name)

    def change_speed(self, speed: int) -> None:
        """Switch chip and host to ``speed``."""
        self.set_serial_speed(speed)
        self.transport.set_baudrate(speed)

    def set_bt_mac(self, mac: str) -> None:
        params = encode_mac_param(mac)
        logger.info(f"Writing BT MAC {mac}...")
        self._expect_complete(Opcode.SET_BT_MAC, self.opcodes.transact(Opcode.SET_BT_MAC, params))

    def set_wifi_mac(self, mac: str) -> None:
        params = encode_mac_param(mac)
        logger.info(f"Writing WIFI MAC {mac}...")
        self._expect_complete(Opcode.SET_WIFI_MAC, self.opcodes.transact(Opcode.SET_WIFI_MAC, params))

    def set_rf_gain(self, gain: str) -> None:
        params = encode_gain_param(gain)
        logger.info("Writing RF gain...")
        self._expect_complete(Opcode.SET_GAIN, self.opcodes.transact(Opcode.SET_GAIN, params))

    def flash_firmware(
        self,
        image: bytes,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> TransferSession:
        """Stream ``image`` into flash via the bulk transfer engine."""
        logger.info("Flashing chip...")
        return self.xmodem.transfer(image, progress_cb)

    def reboot(self) -> None:
        """Reboot the chip (no reply expected)."""
        logger.info("Rebooting chip...")
        self.opcodes.transact(Opcode.REBOOT)
