"""Print bridge operations shared by the HTTP API and the embedded variant."""

import base64
import binascii
import logging
import platform
from typing import Any, Dict, Mapping, Optional

from printbridge.core.config import Settings
from printbridge.core.errors import InvalidPayloadError, NotConfiguredError, PrinterDiscoveryError
from printbridge.schemas.printer import (
    PrinterConfigUpdate,
    PrinterConfiguration,
    PrinterInfo,
    PrintersResponse,
)
from printbridge.services.config_store import PrinterConfigStore
from printbridge.services.escpos import build_test_page, compile_receipt, drawer_kick, parse_receipt
from printbridge.services.spool import SpoolBackend, get_spool_backend
from printbridge.services.transport import Dispatcher, LocalSpoolSink, NetworkSink

logger = logging.getLogger(__name__)


def _platform_name() -> str:
    system = platform.system().lower()
    return {"darwin": "mac"}.get(system, system or "unknown")


class PrintBridgeService:
    """Everything the POS can ask the bridge to do.

    Each print operation reads the configuration once, up front; a
    ``/config`` change arriving while a job is in flight does not affect it.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[PrinterConfigStore] = None,
        backend: Optional[SpoolBackend] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.settings = settings
        self.store = store or PrinterConfigStore(settings.config_path)
        self.backend = backend or get_spool_backend(settings.spool_backend)
        self.dispatcher = dispatcher or Dispatcher(
            network=NetworkSink(timeout=settings.network_timeout),
            local=LocalSpoolSink(backend=self.backend, timeout=settings.spool_timeout),
        )

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": self.settings.version,
            "service": self.settings.service_name,
            "platform": _platform_name(),
            "requiresAuth": self.settings.require_auth,
            "printer": self.store.snapshot().to_response(),
        }

    def get_config(self) -> PrinterConfiguration:
        return self.store.snapshot()

    def update_config(self, changes: PrinterConfigUpdate) -> PrinterConfiguration:
        return self.store.update(changes)

    async def list_printers(self) -> PrintersResponse:
        try:
            names = await self.backend.list_printers(timeout=self.settings.spool_timeout)
        except PrinterDiscoveryError as e:
            logger.error(str(e))
            return PrintersResponse(printers=[], error=e.message)

        return PrintersResponse(
            printers=[PrinterInfo(type=self.backend.printer_type, name=n) for n in names]
        )

    # ------------------------------------------------------------------
    # Printing
    # ------------------------------------------------------------------

    @staticmethod
    def _require_printer(config: PrinterConfiguration) -> None:
        if config.target is None:
            raise NotConfiguredError()

    async def print_receipt(self, receipt: Mapping[str, Any]) -> str:
        config = self.store.snapshot()
        description = parse_receipt(receipt)
        self._require_printer(config)

        payload = compile_receipt(description, config.paper_width)
        await self.dispatcher.deliver(payload, config)
        logger.info(f"Receipt printed ({len(payload)} bytes) on {config.target}")
        return "Print job sent successfully"

    async def print_kitchen(self, ticket: Mapping[str, Any]) -> str:
        """Print a ticket on the kitchen printer instead of the receipt printer."""
        kitchen = self.store.snapshot().kitchen()
        description = parse_receipt(ticket)
        if kitchen is None:
            raise NotConfiguredError("Kitchen printer not configured")
        self._require_printer(kitchen)

        payload = compile_receipt(description, kitchen.paper_width)
        await self.dispatcher.deliver(payload, kitchen)
        logger.info(f"Kitchen ticket printed ({len(payload)} bytes) on {kitchen.target}")
        return "Kitchen ticket sent successfully"

    async def print_raw(self, data: Optional[str]) -> str:
        config = self.store.snapshot()
        # line-wrapped base64 is accepted
        data = "".join(data.split()) if isinstance(data, str) else None
        if not data:
            raise InvalidPayloadError("Raw data required (base64)")
        if len(data) > self.settings.max_raw_payload:
            raise InvalidPayloadError("Payload too large")
        try:
            payload = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidPayloadError("Invalid base64 data")
        self._require_printer(config)

        await self.dispatcher.deliver(payload, config)
        return "Raw print job sent"

    async def open_drawer(self) -> str:
        config = self.store.snapshot()
        self._require_printer(config)

        await self.dispatcher.deliver(drawer_kick(), config)
        logger.info(f"Cash drawer pulse sent via {config.target}")
        return "Cash drawer opened"

    async def test_print(self) -> str:
        config = self.store.snapshot()
        self._require_printer(config)

        await self.dispatcher.deliver(build_test_page(config.paper_width), config)
        return "Test page printed successfully"
