"""
W80x Flasher CLI

Command-line interface for secboot programming of W80x chips.
"""

import sys
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from w80x_flasher import __version__
from w80x_flasher.config import DEFAULT_BAUDRATE, DEFAULT_PORT, ProgrammerConfig
from w80x_flasher.core.actions import ProgramRequest, program_device
from w80x_flasher.core.parsing import (
    parse_erase_spec as _parse_erase_spec_core,
    parse_gain as _parse_gain_core,
    parse_mac as _parse_mac_core,
)
from w80x_flasher.core.results import OperationResult
from w80x_flasher.errors import ValidationError

# Setup Rich console
console = Console()

app = typer.Typer(help="W80x Flasher - secboot programmer for W80x Wi-Fi/BT chips")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route package logs through Rich; quiet keeps stdout clean for JSON."""
    handler = RichHandler(
        console=Console(stderr=True) if quiet else console,
        rich_tracebacks=True,
        show_path=False,
    )
    if quiet:
        handler.setLevel(logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def parse_mac(value: Optional[str]) -> Optional[str]:
    """
    Validate a MAC option.

    CLI wrapper around core.parsing.parse_mac that converts ValidationError
    to typer.BadParameter for proper CLI error handling.
    """
    if value is None:
        return None
    try:
        return _parse_mac_core(value)
    except ValidationError as e:
        raise typer.BadParameter(str(e))


def parse_gain(value: Optional[str]) -> Optional[str]:
    """Validate the RF gain option (168 hex characters)."""
    if value is None:
        return None
    try:
        return _parse_gain_core(value)
    except ValidationError as e:
        raise typer.BadParameter(str(e))


def parse_erase(value: Optional[str]) -> Optional[str]:
    """Validate an ``offset:size`` erase option."""
    if value is None:
        return None
    try:
        _parse_erase_spec_core(value)
    except ValidationError as e:
        raise typer.BadParameter(str(e))
    return value


def print_results(results: List[OperationResult], verbose: bool = False) -> None:
    """Print a summary table plus chip details."""
    table = Table(title="Session")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Details", style="dim")

    for result in results:
        status = "[green]OK[/green]" if result.ok else "[red]FAILED[/red]"
        if result.errors:
            details = "; ".join(result.errors)
        elif result.operation == "secboot":
            details = result.metadata.get("banner", "")
        elif result.operation == "flash":
            details = (
                f"{result.bytes_len:,} bytes, {result.metadata.get('packets', 0)} packets, "
                f"{result.metadata.get('rate', 0):,.0f} B/s"
            )
        elif result.operation == "erase":
            details = f"{result.metadata.get('blocks', 0)} blocks @ 0x{result.metadata.get('offset', 0):04X}"
        elif "mac" in result.metadata:
            details = result.metadata["mac"]
        elif "speed" in result.metadata:
            details = f"{result.metadata['speed']} bps"
        else:
            details = ""
        table.add_row(result.operation, status, details)

    console.print(table)

    for result in results:
        chip = result.metadata.get("chip")
        if not chip:
            continue
        info = Table(title="Chip Information", show_header=False)
        info.add_column("Field", style="cyan")
        info.add_column("Value", style="magenta")
        info.add_row("BT MAC", chip["bt_mac"])
        info.add_row("WIFI MAC", chip["wifi_mac"])
        info.add_row("Flash", chip["flash_id"])
        info.add_row("ROM", chip["rom_version"])
        info.add_row("RF GAIN", chip["rf_gain"] if verbose else chip["rf_gain"][:24] + "...")
        console.print(info)

    for result in results:
        for warning in result.warnings:
            print_warning(f"{result.operation}: {warning}")


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command()
def program(
    port: str = typer.Option(DEFAULT_PORT, "--port", "-p", envvar="W80X_PORT", help="Serial port"),
    secboot: bool = typer.Option(False, "--secboot", "-o", help="Reset the chip into secboot mode"),
    info: bool = typer.Option(False, "--info", "-i", help="Read the chip info"),
    speed: Optional[int] = typer.Option(None, "--speed", "-s", help="Switch to this baud rate for the download"),
    flash: Optional[Path] = typer.Option(None, "--flash", "-f", help="Flash chip with data from file"),
    erase: Optional[str] = typer.Option(
        None, "--erase", "-e", callback=parse_erase, help="Erase flash region offset:size"
    ),
    bt: Optional[str] = typer.Option(None, "--bt", "-b", callback=parse_mac, help="Set Bluetooth MAC (XX:XX:XX:XX:XX:XX)"),
    wifi: Optional[str] = typer.Option(None, "--wifi", "-w", callback=parse_mac, help="Set Wi-Fi MAC (XX:XX:XX:XX:XX:XX)"),
    gain: Optional[str] = typer.Option(None, "--gain", "-g", callback=parse_gain, help="Set RF gain (168 hex chars)"),
    reset: bool = typer.Option(False, "--reset", "-r", help="Reboot chip after the other steps"),
    baudrate: int = typer.Option(DEFAULT_BAUDRATE, "--baudrate", help="Initial line speed"),
    simulate: bool = typer.Option(False, "--simulate", help="Run against a simulated chip"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show wire traffic"),
) -> None:
    """Run a programming session: secboot, info, erase, MACs, gain, speed, flash, reset."""
    setup_logging(verbose, quiet=as_json)

    request = ProgramRequest(
        secboot=secboot,
        info=info,
        erase=_parse_erase_spec_core(erase) if erase else None,
        bt_mac=bt,
        wifi_mac=wifi,
        gain=gain,
        speed=speed,
        firmware=flash,
        reset=reset,
    )
    if not request.steps():
        print_error("Nothing to do. Pass at least one of --secboot/--info/--erase/--bt/--wifi/--gain/--speed/--flash/--reset.")
        raise typer.Exit(code=2)

    try:
        request.validate()
    except ValidationError as e:
        raise typer.BadParameter(str(e))

    if not as_json:
        print_header(f"W80x Flasher v{__version__}")

    config = ProgrammerConfig(port=port, baudrate=baudrate)

    with Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=console,
        disable=as_json,
    ) as progress:
        task = None

        def on_progress(done: int, total: int) -> None:
            nonlocal task
            if task is None:
                task = progress.add_task("Flashing", total=total)
            progress.update(task, completed=done)

        try:
            results = program_device(request, config, simulate=simulate, progress_cb=on_progress)
        except ValidationError as e:
            raise typer.BadParameter(str(e))

    ok = all(result.ok for result in results)

    if as_json:
        console.print_json(json.dumps([result.to_dict() for result in results]))
    else:
        print_results(results, verbose=verbose)
        if ok:
            print_success("Session complete")
        else:
            failed = results[-1]
            print_error(f"{failed.operation} failed")
            console.print(failed.to_summary(), style="red", markup=False)

    if not ok:
        raise typer.Exit(code=1)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
