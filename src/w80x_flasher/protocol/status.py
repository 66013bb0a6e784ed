"""
Secboot status bytes.

The chip reports the outcome of the last command as one ASCII byte. 'C' means
the operation completed (and doubles as the idle marker while polling); every
other letter is a failure reason.
"""

from enum import IntEnum
from typing import Dict, Union


class StatusCode(IntEnum):
    """Status letters returned by the secboot ROM."""

    COMPLETE = ord("C")

    # bulk transfer
    CANCEL = ord("D")
    TIMEOUT = ord("F")
    BAD_INDEX = ord("G")
    IMAGE_TOO_LARGE = ord("I")
    BAD_ADDRESS = ord("J")
    MISALIGNED = ord("K")
    HEADER_CRC = ord("L")
    CONTENT_CRC = ord("M")
    MISSING_SIGNATURE = ord("P")

    # startup self test
    FLASH_ID = ord("N")
    FIRMWARE_TYPE = ord("Q")
    DECRYPT = ord("Y")
    SIGNATURE = ord("Z")

    # command handling
    COMMAND_CRC = ord("R")
    BAD_PARAMETER = ord("S")
    GET_PARAM = ord("T")
    SET_GAIN = ord("U")
    SET_MAC = ord("V")


UNKNOWN_STATUS = "Unrecognized status"

STATUS_MESSAGES: Dict[int, str] = {
    StatusCode.COMPLETE: "Operation complete",
    StatusCode.CANCEL: "Host cancel",
    StatusCode.TIMEOUT: "Timeout no data received",
    StatusCode.BAD_INDEX: "Wrong package serial number",
    StatusCode.IMAGE_TOO_LARGE: "Image too large",
    StatusCode.BAD_ADDRESS: "Illegal image flash address",
    StatusCode.MISALIGNED: "The image burning address page is not aligned",
    StatusCode.HEADER_CRC: "Image header check error",
    StatusCode.CONTENT_CRC: "Image content verification error",
    StatusCode.MISSING_SIGNATURE: "The image content is incomplete or the signature is missing",
    StatusCode.FLASH_ID: "Flash ID self test failed",
    StatusCode.FIRMWARE_TYPE: "Firmware type error",
    StatusCode.DECRYPT: "Failed to decrypt and read secboot",
    StatusCode.SIGNATURE: "Signature verification failed",
    StatusCode.COMMAND_CRC: "Command check error",
    StatusCode.BAD_PARAMETER: "Command parameter error",
    StatusCode.GET_PARAM: "Failed to get ft parameters (MAC, gain, etc.)",
    StatusCode.SET_GAIN: "Set gain failed",
    StatusCode.SET_MAC: "Failed to set mac",
}


def _as_int(status: Union[int, bytes]) -> int:
    if isinstance(status, (bytes, bytearray)):
        if len(status) != 1:
            raise ValueError(f"status must be a single byte, got {len(status)}")
        return status[0]
    return int(status)


def status_name(status: Union[int, bytes]) -> str:
    """
    Translate a status byte into a human readable reason.

    Total over 0..255: bytes outside the table map to "Unrecognized status".
    """
    return STATUS_MESSAGES.get(_as_int(status), UNKNOWN_STATUS)


def is_complete(status: Union[int, bytes]) -> bool:
    """True only for the 'C' (operation complete) status."""
    return _as_int(status) == StatusCode.COMPLETE
