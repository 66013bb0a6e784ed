"""
Core workflow actions for W80x Flasher.

A programming session runs the requested steps in a fixed order on one open
transport and stops at the first failure:

    secboot -> info -> erase -> bt mac -> wifi mac -> gain -> speed -> flash -> reset

Every step produces an OperationResult; inputs are validated before the port
is opened.
"""

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from w80x_flasher.config import DEFAULT_CONFIG, ProgrammerConfig
from w80x_flasher.errors import ValidationError, W80xError
from w80x_flasher.protocol import W80xProtocol, W80xTransport
from w80x_flasher.protocol.fields import erase_block_count
from w80x_flasher.protocol.xmodem import ProgressCallback, chunk_image
from w80x_flasher.simulator import W80xSimulator

from .parsing import parse_erase_spec, parse_gain, parse_mac, parse_speed
from .results import OperationResult

logger = logging.getLogger(__name__)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "w80x_flasher"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    effective_level = target_logger.getEffectiveLevel()
    handler = _ListLogHandler(level=min(effective_level, logging.INFO))
    previous_level = target_logger.level
    # INFO at least, without hiding DEBUG when it is already enabled
    if effective_level > logging.INFO:
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


@dataclass
class ProgramRequest:
    """
    Steps requested for one session.

    Attributes:
        secboot: Reset the chip into secboot first
        info: Read chip identity
        erase: (offset, size) flash region to erase
        bt_mac: Bluetooth MAC to write
        wifi_mac: Wi-Fi MAC to write
        gain: 168 hex character RF gain table
        speed: Line speed to switch chip and host to
        firmware: Image file to flash
        reset: Reboot the chip at the end
    """
    secboot: bool = False
    info: bool = False
    erase: Optional[Tuple[int, int]] = None
    bt_mac: Optional[str] = None
    wifi_mac: Optional[str] = None
    gain: Optional[str] = None
    speed: Optional[int] = None
    firmware: Optional[Path] = None
    reset: bool = False

    def validate(self) -> None:
        """
        Check every value before any serial I/O.

        Raises:
            ValidationError: On the first malformed value
        """
        if self.erase is not None:
            parse_erase_spec(f"{self.erase[0]}:{self.erase[1]}")
        if self.bt_mac is not None:
            parse_mac(self.bt_mac)
        if self.wifi_mac is not None:
            parse_mac(self.wifi_mac)
        if self.gain is not None:
            parse_gain(self.gain)
        if self.speed is not None:
            parse_speed(self.speed)
        if self.firmware is not None and not Path(self.firmware).is_file():
            raise ValidationError(f"Firmware file not found: {self.firmware}")

    def steps(self) -> List[str]:
        """Names of the steps this request will run, in order."""
        wanted = [
            ("secboot", self.secboot),
            ("chip_info", self.info),
            ("erase", self.erase is not None),
            ("bt_mac", self.bt_mac is not None),
            ("wifi_mac", self.wifi_mac is not None),
            ("rf_gain", self.gain is not None),
            ("speed", self.speed is not None),
            ("flash", self.firmware is not None),
            ("reset", self.reset),
        ]
        return [name for name, enabled in wanted if enabled]


def load_firmware(path: Path) -> bytes:
    """
    Read a firmware image.

    Raises:
        ValidationError: Missing or empty file
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Firmware file not found: {path}")
    image = path.read_bytes()
    if not image:
        raise ValidationError(f"Firmware file is empty: {path}")
    return image


def run_step(
    operation: str,
    port: str,
    action: Callable[[OperationResult], None],
) -> OperationResult:
    """
    Run one step, turning protocol errors into a failed result.

    ``action`` receives the (successful) result to fill in metadata.
    """
    result = OperationResult.success(operation, port=port)
    with _capture_logs() as logs:
        try:
            action(result)
        except W80xError as exc:
            logger.error(f"{operation} failed: {exc}")
            result.add_error(str(exc))
            result.metadata["error_type"] = type(exc).__name__
        result.logs = list(logs)
    return result


def run_program(
    protocol: W80xProtocol,
    request: ProgramRequest,
    progress_cb: Optional[ProgressCallback] = None,
    port: str = "",
) -> List[OperationResult]:
    """
    Execute the requested steps in order, stopping at the first failure.

    Args:
        protocol: Operations bound to an open transport
        request: Steps to run
        progress_cb: Optional callback(bytes_done, total) for the flash step
        port: Port name recorded in results

    Returns:
        One OperationResult per executed step; only the last one can fail.

    Raises:
        ValidationError: Invalid request (nothing is sent)
    """
    request.validate()
    image = load_firmware(request.firmware) if request.firmware is not None else None

    def secboot(result: OperationResult) -> None:
        result.metadata["banner"] = protocol.enter_secboot()

    def chip_info(result: OperationResult) -> None:
        result.metadata["chip"] = protocol.read_chip_info().to_dict()

    def erase(result: OperationResult) -> None:
        offset, size = request.erase
        result.metadata["offset"] = offset
        result.metadata["blocks"] = protocol.erase_flash(offset, size)
        result.bytes_len = erase_block_count(size) * 4096

    def bt_mac(result: OperationResult) -> None:
        protocol.set_bt_mac(request.bt_mac)
        result.metadata["mac"] = request.bt_mac.lower()

    def wifi_mac(result: OperationResult) -> None:
        protocol.set_wifi_mac(request.wifi_mac)
        result.metadata["mac"] = request.wifi_mac.lower()

    def rf_gain(result: OperationResult) -> None:
        protocol.set_rf_gain(request.gain)

    def speed(result: OperationResult) -> None:
        protocol.change_speed(request.speed)
        result.metadata["speed"] = request.speed

    def flash(result: OperationResult) -> None:
        result.bytes_len = len(image)
        result.hashes["sha256"] = hashlib.sha256(image).hexdigest()
        result.metadata["packets"] = len(chunk_image(image))
        session = protocol.flash_firmware(image, progress_cb)
        result.metadata["retries"] = session.retries
        result.metadata["elapsed"] = round(session.elapsed, 3)
        result.metadata["rate"] = round(session.rate, 1)
        if session.retries:
            result.add_warning(f"{session.retries} packet(s) were retransmitted")

    def reset(result: OperationResult) -> None:
        protocol.reboot()

    actions = {
        "secboot": secboot,
        "chip_info": chip_info,
        "erase": erase,
        "bt_mac": bt_mac,
        "wifi_mac": wifi_mac,
        "rf_gain": rf_gain,
        "speed": speed,
        "flash": flash,
        "reset": reset,
    }

    results: List[OperationResult] = []
    for name in request.steps():
        result = run_step(name, port, actions[name])
        results.append(result)
        if not result.ok:
            break
    return results


def program_device(
    request: ProgramRequest,
    config: ProgrammerConfig = DEFAULT_CONFIG,
    simulate: bool = False,
    progress_cb: Optional[ProgressCallback] = None,
) -> List[OperationResult]:
    """
    Open the port named in ``config``, run a session and close the port.

    Args:
        request: Steps to run
        config: Port, speed and protocol tunables
        simulate: Run against the in-memory chip simulator instead
        progress_cb: Optional callback(bytes_done, total) for the flash step

    Returns:
        Results of the executed steps. A port that cannot be opened yields a
        single failed "open" result.
    """
    request.validate()

    if simulate:
        transport = W80xSimulator(in_secboot=not request.secboot)
        port = transport.port
    else:
        transport = W80xTransport(config.port, baudrate=config.baudrate)
        port = config.port

    opened = run_step("open", port, lambda result: transport.open())
    if not opened.ok:
        return [opened]

    try:
        protocol = W80xProtocol(transport, config)
        return run_program(protocol, request, progress_cb=progress_cb, port=port)
    finally:
        transport.close()
