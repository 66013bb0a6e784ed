"""
Core module for W80x Flasher.

This module provides the single source of truth for:
- Command line value parsing (parsing.py)
- Result objects (results.py)
- Session orchestration (actions.py)

The CLI should call into this module rather than drive the protocol
engines directly.
"""

from .parsing import parse_int, parse_erase_spec, parse_mac, parse_gain, parse_speed
from .results import OperationResult
from .actions import (
    ProgramRequest,
    load_firmware,
    run_step,
    run_program,
    program_device,
)

__all__ = [
    # Parsing
    "parse_int",
    "parse_erase_spec",
    "parse_mac",
    "parse_gain",
    "parse_speed",
    # Results
    "OperationResult",
    # Actions
    "ProgramRequest",
    "load_firmware",
    "run_step",
    "run_program",
    "program_device",
]
