"""Print capability clients.

The POS talks to a printer through one abstract capability set. Two
implementations exist: the HTTP bridge running on the cashier's machine, and
an embedded variant that calls the bridge service in-process (used when the
POS runs inside the desktop wrapper). Callers pick one with
:func:`select_capability` and never care which they got.
"""

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from printbridge.core.errors import AuthenticationError, PrintBridgeError
from printbridge.core.security import TOKEN_HEADER
from printbridge.schemas.printer import BridgeStatus, PrinterConfiguration, PrinterInfo, PrintResult
from printbridge.schemas.receipt import ReceiptDescription
from printbridge.services.bridge import PrintBridgeService

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_URL = "http://127.0.0.1:9638"
STATUS_CACHE_SECONDS = 5.0

ReceiptInput = Union[ReceiptDescription, Mapping[str, Any]]
RawInput = Union[bytes, str]


def _receipt_body(receipt: ReceiptInput) -> Dict[str, Any]:
    if isinstance(receipt, ReceiptDescription):
        return receipt.model_dump(mode="json", by_alias=True, exclude_none=True)
    return dict(receipt)


def _raw_body(data: RawInput) -> str:
    if isinstance(data, bytes):
        return base64.b64encode(data).decode("ascii")
    return data


class PrintCapability(ABC):
    """Operations the POS can perform against a receipt printer."""

    @abstractmethod
    async def check_availability(self) -> BridgeStatus:
        """Whether the printer path is reachable, plus its configuration."""

    @abstractmethod
    async def list_printers(self) -> List[PrinterInfo]:
        """Printers the bridge can see."""

    @abstractmethod
    async def print_receipt(self, receipt: ReceiptInput) -> PrintResult:
        """Compile and print one receipt."""

    @abstractmethod
    async def print_kitchen(self, ticket: ReceiptInput) -> PrintResult:
        """Print a ticket on the kitchen printer."""

    @abstractmethod
    async def print_raw(self, data: RawInput) -> PrintResult:
        """Print pre-built ESC/POS bytes (raw or base64)."""

    @abstractmethod
    async def open_drawer(self) -> PrintResult:
        """Pulse the cash drawer."""


class HttpPrintBridgeClient(PrintCapability):
    """Client for the bridge's HTTP API on the local machine."""

    def __init__(
        self,
        base_url: str = DEFAULT_BRIDGE_URL,
        token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._status_cache: Optional[BridgeStatus] = None
        self._status_cache_time = 0.0

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers[TOKEN_HEADER] = self.token
        return headers

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    def invalidate_status(self) -> None:
        self._status_cache = None
        self._status_cache_time = 0.0

    def _check_auth(self, response: httpx.Response) -> None:
        if response.status_code == 401:
            # Stale token: forget it so the operator is asked for a new one
            self.token = None
            self.invalidate_status()
            raise AuthenticationError("Print bridge rejected the token")

    async def check_availability(self) -> BridgeStatus:
        now = time.monotonic()
        if self._status_cache and (now - self._status_cache_time) < STATUS_CACHE_SECONDS:
            return self._status_cache

        status = BridgeStatus(is_available=False)
        try:
            async with self._client(timeout=2.0) as client:
                resp = await client.get("/health", headers=self._headers())
            if resp.status_code == 200:
                data = resp.json()
                status = BridgeStatus(
                    is_available=True,
                    version=data.get("version"),
                    service=data.get("service"),
                    platform=data.get("platform"),
                    requires_auth=bool(data.get("requiresAuth", False)),
                    printer=PrinterConfiguration.model_validate(data["printer"]) if data.get("printer") else None,
                )
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Print bridge not available at {self.base_url}: {e}")

        self._status_cache = status
        self._status_cache_time = now
        return status

    async def list_printers(self) -> List[PrinterInfo]:
        try:
            async with self._client() as client:
                resp = await client.get("/printers", headers=self._headers())
        except httpx.HTTPError as e:
            logger.debug(f"Print bridge not available at {self.base_url}: {e}")
            return []
        self._check_auth(resp)
        if resp.status_code != 200:
            return []
        try:
            data = resp.json()
        except ValueError:
            logger.warning(f"Unexpected /printers response from {self.base_url}")
            return []
        return [PrinterInfo.model_validate(p) for p in data.get("printers", [])]

    async def configure_printer(self, config: Mapping[str, Any]) -> bool:
        try:
            async with self._client() as client:
                resp = await client.post("/config", headers=self._headers(), json=dict(config))
        except httpx.HTTPError as e:
            logger.debug(f"Print bridge not available at {self.base_url}: {e}")
            return False
        self._check_auth(resp)
        if resp.status_code == 200:
            self.invalidate_status()
            return True
        return False

    async def _post(self, path: str, body: Optional[Dict[str, Any]] = None) -> PrintResult:
        try:
            async with self._client() as client:
                resp = await client.post(path, headers=self._headers(), json=body or {})
        except httpx.HTTPError as e:
            logger.warning(f"Print bridge request {path} failed: {e}")
            return PrintResult(success=False, error="Print bridge not available")
        self._check_auth(resp)
        try:
            data = resp.json()
        except ValueError:
            return PrintResult(success=False, error=f"Unexpected bridge response ({resp.status_code})")
        return PrintResult(
            success=bool(data.get("success", False)),
            message=data.get("message") or "",
            error=data.get("error"),
        )

    async def print_receipt(self, receipt: ReceiptInput) -> PrintResult:
        return await self._post("/print", {"receipt": _receipt_body(receipt)})

    async def print_kitchen(self, ticket: ReceiptInput) -> PrintResult:
        return await self._post("/print-kitchen", {"ticket": _receipt_body(ticket)})

    async def print_raw(self, data: RawInput) -> PrintResult:
        return await self._post("/print-raw", {"data": _raw_body(data)})

    async def open_drawer(self) -> PrintResult:
        return await self._post("/drawer")


class EmbeddedPrintBridge(PrintCapability):
    """Same capability set served in-process by a PrintBridgeService."""

    def __init__(self, service: PrintBridgeService):
        self.service = service

    async def check_availability(self) -> BridgeStatus:
        health = self.service.health()
        return BridgeStatus(
            is_available=True,
            version=health["version"],
            service=health["service"],
            platform=health["platform"],
            requires_auth=False,
            printer=self.service.get_config(),
        )

    async def list_printers(self) -> List[PrinterInfo]:
        return (await self.service.list_printers()).printers

    async def _run(self, operation) -> PrintResult:
        try:
            message = await operation
        except PrintBridgeError as e:
            return PrintResult(success=False, error=e.message)
        return PrintResult(success=True, message=message)

    async def print_receipt(self, receipt: ReceiptInput) -> PrintResult:
        if not isinstance(receipt, ReceiptDescription):
            receipt = dict(receipt)
        return await self._run(self.service.print_receipt(receipt))

    async def print_kitchen(self, ticket: ReceiptInput) -> PrintResult:
        if not isinstance(ticket, ReceiptDescription):
            ticket = dict(ticket)
        return await self._run(self.service.print_kitchen(ticket))

    async def print_raw(self, data: RawInput) -> PrintResult:
        return await self._run(self.service.print_raw(_raw_body(data)))

    async def open_drawer(self) -> PrintResult:
        return await self._run(self.service.open_drawer())


def select_capability(
    embedded: Optional[PrintBridgeService] = None,
    base_url: str = DEFAULT_BRIDGE_URL,
    token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PrintCapability:
    """Embedded variant when the host exposes one, otherwise the HTTP bridge."""
    if embedded is not None:
        return EmbeddedPrintBridge(embedded)
    return HttpPrintBridgeClient(base_url=base_url, token=token, transport=transport)
