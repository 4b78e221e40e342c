"""OS print spool back ends.

Each back end knows the shell commands that push a raw file to a printer
registered with the operating system, plus how to enumerate those printers.
Commands are run with ``asyncio.create_subprocess_exec`` (never through a
shell string), so printer names and paths are passed as plain arguments.
"""

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from printbridge.core.errors import PrinterDiscoveryError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one OS command."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def describe(self) -> str:
        if self.timed_out:
            return "command timed out"
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


async def run_command(argv: Sequence[str], timeout: float) -> CommandResult:
    """Run a command, killing it when ``timeout`` seconds pass."""
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        # Command not installed on this machine
        return CommandResult(returncode=127, stderr=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return CommandResult(returncode=-1, timed_out=True)

    return CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


class SpoolBackend(ABC):
    """Platform-specific spooling commands."""

    name = "spool"
    printer_type = "local"

    @abstractmethod
    def primary_command(self, printer_name: str, path: str) -> List[str]:
        """Preferred command sending the raw file at ``path``."""

    @abstractmethod
    def fallback_command(self, printer_name: str, path: str) -> List[str]:
        """Command tried when the primary one fails."""

    @abstractmethod
    def list_command(self) -> List[str]:
        """Command printing the registered printers."""

    @abstractmethod
    def parse_printers(self, output: str) -> List[str]:
        """Printer names from the output of ``list_command``."""

    async def list_printers(self, timeout: float = 10.0) -> List[str]:
        result = await run_command(self.list_command(), timeout)
        if not result.ok:
            raise PrinterDiscoveryError(f"Error detecting printers: {result.describe()}")
        return self.parse_printers(result.stdout)


class WindowsSpoolBackend(SpoolBackend):
    """Shared Windows printers: ``copy /b`` to the share, ``print /d`` as fallback."""

    name = "windows"

    def primary_command(self, printer_name: str, path: str) -> List[str]:
        return ["cmd.exe", "/c", "copy", "/b", path, f"\\\\localhost\\{printer_name}"]

    def fallback_command(self, printer_name: str, path: str) -> List[str]:
        return ["cmd.exe", "/c", "print", f"/d:{printer_name}", path]

    def list_command(self) -> List[str]:
        return [
            "powershell.exe", "-NoProfile", "-Command",
            "Get-Printer | Select-Object -ExpandProperty Name",
        ]

    def parse_printers(self, output: str) -> List[str]:
        return [line.strip() for line in output.splitlines() if line.strip()]


class CupsSpoolBackend(SpoolBackend):
    """CUPS queues on macOS and Linux, sent with the raw option."""

    name = "cups"

    def primary_command(self, printer_name: str, path: str) -> List[str]:
        return ["lp", "-d", printer_name, "-o", "raw", path]

    def fallback_command(self, printer_name: str, path: str) -> List[str]:
        return ["lpr", "-P", printer_name, "-l", path]

    def list_command(self) -> List[str]:
        return ["lpstat", "-p"]

    def parse_printers(self, output: str) -> List[str]:
        # "printer EPSON_TM_T20 is idle.  enabled since ..."
        names = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == "printer":
                names.append(parts[1])
        return names


def get_spool_backend(name: Optional[str] = "auto") -> SpoolBackend:
    """Back end for the given name, or for the running platform with ``auto``."""
    if name == "windows":
        return WindowsSpoolBackend()
    if name == "cups":
        return CupsSpoolBackend()
    if sys.platform.startswith("win"):
        return WindowsSpoolBackend()
    return CupsSpoolBackend()
