"""Delivery of compiled ESC/POS payloads to printers.

Two sinks sit behind :class:`Dispatcher`:

- network: raw TCP (port 9100 "JetDirect" style) straight to the printer
- local: a temporary file handed to the OS spooler by a :class:`SpoolBackend`

Nothing here retries; the POS decides whether to send a failed job again.
"""

import asyncio
import logging
import os
import tempfile
from typing import Optional

from printbridge.core.errors import LocalSpoolError, NetworkDeliveryError, NotConfiguredError
from printbridge.schemas.printer import PrinterConfiguration, PrinterType
from printbridge.services.spool import SpoolBackend, get_spool_backend, run_command

logger = logging.getLogger(__name__)


class NetworkSink:
    """Raw TCP connection to a network printer."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    async def send(self, payload: bytes, host: str, port: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        writer: Optional[asyncio.StreamWriter] = None

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout
            )
            writer.write(payload)
            await asyncio.wait_for(writer.drain(), timeout=max(0.0, deadline - loop.time()))
            if writer.can_write_eof():
                writer.write_eof()
        except asyncio.TimeoutError:
            self._abort(writer)
            logger.error(f"Printer at {host}:{port} timed out after {self.timeout}s")
            raise NetworkDeliveryError("Connection timeout", host=host, port=port)
        except OSError as e:
            self._abort(writer)
            logger.error(f"Failed to send data to printer at {host}:{port}: {e}")
            raise NetworkDeliveryError(str(e) or e.__class__.__name__, host=host, port=port)

        # Graceful end; the data has already been handed to the printer
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=max(0.1, deadline - loop.time()))
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Printer socket {host}:{port} did not close cleanly: {e}")
            self._abort(writer)

        logger.info(f"Sent {len(payload)} bytes to network printer {host}:{port}")

    @staticmethod
    def _abort(writer: Optional[asyncio.StreamWriter]) -> None:
        if writer is not None:
            writer.transport.abort()


class LocalSpoolSink:
    """OS-registered printer reached through the spooler."""

    def __init__(self, backend: Optional[SpoolBackend] = None, timeout: float = 10.0):
        self.backend = backend or get_spool_backend()
        self.timeout = timeout

    @staticmethod
    def _write_spool_file(payload: bytes, printer_name: str) -> str:
        try:
            fd, path = tempfile.mkstemp(prefix="flowp_receipt_", suffix=".bin")
        except OSError as e:
            logger.error(f"Cannot create print file for '{printer_name}': {e}")
            raise LocalSpoolError(f"Cannot create print file: {e}", printer_name=printer_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
        except OSError as e:
            os.unlink(path)
            logger.error(f"Cannot write print file for '{printer_name}': {e}")
            raise LocalSpoolError(f"Cannot write print file: {e}", printer_name=printer_name)
        return path

    async def send(self, payload: bytes, printer_name: str) -> None:
        if not printer_name:
            raise NotConfiguredError()

        path = self._write_spool_file(payload, printer_name)
        try:
            primary = await run_command(self.backend.primary_command(printer_name, path), self.timeout)
            if primary.ok:
                logger.info(f"Spooled {len(payload)} bytes to '{printer_name}' via {self.backend.name}")
                return

            logger.warning(
                f"Primary print command failed for '{printer_name}': {primary.describe()}; trying fallback"
            )
            fallback = await run_command(self.backend.fallback_command(printer_name, path), self.timeout)
            if fallback.ok:
                logger.info(f"Spooled {len(payload)} bytes to '{printer_name}' via fallback command")
                return

            logger.error(f"Fallback print command failed for '{printer_name}': {fallback.describe()}")
            raise LocalSpoolError(
                f"Print failed: {primary.describe()}; fallback: {fallback.describe()}",
                printer_name=printer_name,
            )
        finally:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass


class Dispatcher:
    """Chooses the sink for a configuration snapshot and delivers a payload."""

    def __init__(self, network: NetworkSink, local: LocalSpoolSink):
        self.network = network
        self.local = local

    async def deliver(self, payload: bytes, config: PrinterConfiguration) -> None:
        if config.type == PrinterType.NETWORK:
            if not config.network_ip:
                raise NotConfiguredError()
            await self.network.send(payload, config.network_ip, config.network_port)
        else:
            if not config.printer_name:
                raise NotConfiguredError()
            await self.local.send(payload, config.printer_name)
