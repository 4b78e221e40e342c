"""Tests for the print capability clients."""

import base64

import httpx
import pytest

from printbridge.client import (
    EmbeddedPrintBridge,
    HttpPrintBridgeClient,
    select_capability,
)
from printbridge.core.errors import AuthenticationError
from printbridge.main import create_app
from printbridge.schemas.printer import PrinterConfigUpdate, PrinterType
from printbridge.services.bridge import PrintBridgeService
from printbridge.services.escpos import ESC, compile_receipt

BASE_URL = "http://bridge.test"


def asgi_client(app, token=None) -> HttpPrintBridgeClient:
    return HttpPrintBridgeClient(base_url=BASE_URL, token=token, transport=httpx.ASGITransport(app=app))


def unreachable_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    return httpx.MockTransport(handler)


class TestHttpPrintBridgeClient:
    """Client for the bridge HTTP API."""

    @pytest.mark.asyncio
    async def test_check_availability(self, app):
        status = await asgi_client(app).check_availability()
        assert status.is_available is True
        assert status.service == "Flowp Print Bridge"
        assert status.requires_auth is False
        assert status.printer.type == PrinterType.LOCAL
        assert status.printer.paper_width == 80

    @pytest.mark.asyncio
    async def test_status_is_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={"status": "ok", "version": "1.0.0", "requiresAuth": False})

        client = HttpPrintBridgeClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        first = await client.check_availability()
        second = await client.check_availability()
        assert first is second
        assert calls == ["/health"]

        client.invalidate_status()
        await client.check_availability()
        assert calls == ["/health", "/health"]

    @pytest.mark.asyncio
    async def test_bridge_not_running(self):
        client = HttpPrintBridgeClient(base_url=BASE_URL, transport=unreachable_transport())
        assert (await client.check_availability()).is_available is False
        assert await client.list_printers() == []
        assert await client.configure_printer({"printerName": "POS-80"}) is False

        result = await client.print_receipt({"total": 1})
        assert result.success is False
        assert result.error == "Print bridge not available"

    @pytest.mark.asyncio
    async def test_list_printers_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy error</html>")

        client = HttpPrintBridgeClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        assert await client.list_printers() == []

    @pytest.mark.asyncio
    async def test_print_kitchen(self, app, network_printer, cafe_receipt):
        client = asgi_client(app)
        assert (await client.print_kitchen(cafe_receipt)).error == "Kitchen printer not configured"

        await client.configure_printer({
            "kitchenEnabled": True,
            "kitchenType": "network",
            "kitchenNetworkIp": network_printer.host,
            "kitchenNetworkPort": network_printer.port,
        })
        result = await client.print_kitchen(cafe_receipt)
        assert result.success is True
        assert network_printer.wait_for_jobs(1) == [compile_receipt(cafe_receipt, 80)]

    @pytest.mark.asyncio
    async def test_configure_and_print(self, app, network_printer, cafe_receipt):
        client = asgi_client(app)
        assert await client.configure_printer({
            "type": "network",
            "networkIp": network_printer.host,
            "networkPort": network_printer.port,
        }) is True

        result = await client.print_receipt(cafe_receipt)
        assert result.success is True
        assert result.message == "Print job sent successfully"
        assert network_printer.wait_for_jobs(1) == [compile_receipt(cafe_receipt, 80)]

    @pytest.mark.asyncio
    async def test_print_raw_bytes(self, app, network_printer):
        client = asgi_client(app)
        await client.configure_printer({"type": "network", "networkIp": network_printer.host, "networkPort": network_printer.port})

        raw = b"\x1b@raw\n"
        assert (await client.print_raw(raw)).success is True
        assert (await client.print_raw(base64.b64encode(raw).decode())).success is True
        assert network_printer.wait_for_jobs(2) == [raw, raw]

    @pytest.mark.asyncio
    async def test_bridge_error_reported(self, app):
        result = await asgi_client(app).open_drawer()
        assert result.success is False
        assert result.error.startswith("No printer configured")

    @pytest.mark.asyncio
    async def test_rejected_token_is_cleared(self, settings_factory):
        app = create_app(settings_factory(require_auth=True, auth_token="secret-token"))
        client = asgi_client(app, token="stale-token")

        with pytest.raises(AuthenticationError):
            await client.open_drawer()
        assert client.token is None

    @pytest.mark.asyncio
    async def test_valid_token_accepted(self, settings_factory):
        app = create_app(settings_factory(require_auth=True, auth_token="secret-token"))
        client = asgi_client(app, token="secret-token")

        status = await client.check_availability()
        assert status.requires_auth is True
        result = await client.open_drawer()
        assert result.error.startswith("No printer configured")
        assert client.token == "secret-token"


class TestEmbeddedPrintBridge:
    """In-process capability backed by PrintBridgeService."""

    @pytest.mark.asyncio
    async def test_check_availability(self, bridge: PrintBridgeService):
        status = await EmbeddedPrintBridge(bridge).check_availability()
        assert status.is_available is True
        assert status.printer == bridge.get_config()

    @pytest.mark.asyncio
    async def test_open_drawer(self, bridge: PrintBridgeService, network_printer):
        capability = EmbeddedPrintBridge(bridge)
        assert (await capability.open_drawer()).success is False

        bridge.update_config(PrinterConfigUpdate(
            type="network", network_ip=network_printer.host, network_port=network_printer.port,
        ))
        result = await capability.open_drawer()
        assert result.success is True
        assert result.message == "Cash drawer opened"
        assert network_printer.wait_for_jobs(1) == [ESC.DRAWER_KICK]

    @pytest.mark.asyncio
    async def test_kitchen_not_configured(self, bridge: PrintBridgeService, cafe_receipt):
        result = await EmbeddedPrintBridge(bridge).print_kitchen(cafe_receipt)
        assert result.success is False
        assert result.error == "Kitchen printer not configured"

    @pytest.mark.asyncio
    async def test_invalid_receipt(self, bridge: PrintBridgeService):
        bridge.update_config(PrinterConfigUpdate(printer_name="EPSON_TM_T20"))
        result = await EmbeddedPrintBridge(bridge).print_receipt({"items": [{"name": "Coffee", "quantity": 0}]})
        assert result.success is False
        assert result.error.startswith("Invalid receipt")


class TestSelectCapability:
    """Choosing between the embedded and HTTP variants."""

    def test_embedded_preferred(self, bridge: PrintBridgeService):
        assert isinstance(select_capability(embedded=bridge), EmbeddedPrintBridge)

    def test_http_fallback(self):
        capability = select_capability(base_url="http://127.0.0.1:9700/", token="abc")
        assert isinstance(capability, HttpPrintBridgeClient)
        assert capability.base_url == "http://127.0.0.1:9700"
        assert capability.token == "abc"
