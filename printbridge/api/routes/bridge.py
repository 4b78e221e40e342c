"""Print bridge API routes: health, discovery, configuration and printing."""

from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from printbridge.core.errors import InvalidReceiptError
from printbridge.schemas.printer import PrinterConfigUpdate, PrintersResponse, PrintResult
from printbridge.schemas.receipt import KitchenPrintRequest, PrintRawRequest, PrintRequest
from printbridge.services.bridge import PrintBridgeService

router = APIRouter()


def get_bridge(request: Request) -> PrintBridgeService:
    return request.app.state.bridge


Bridge = Annotated[PrintBridgeService, Depends(get_bridge)]


# ============================================================================
# Status & Discovery
# ============================================================================

@router.get("/health")
async def health_check(bridge: Bridge) -> Dict[str, Any]:
    """Liveness check; also reports the active printer configuration."""
    return bridge.health()


@router.get("/printers", response_model=PrintersResponse, response_model_exclude_none=True)
async def list_printers(bridge: Bridge):
    """Printers registered with the operating system."""
    return await bridge.list_printers()


# ============================================================================
# Configuration
# ============================================================================

@router.get("/config")
async def get_config(bridge: Bridge) -> Dict[str, Any]:
    return {"success": True, "config": bridge.get_config().to_response()}


@router.post("/config")
async def update_config(bridge: Bridge, changes: Optional[PrinterConfigUpdate] = None) -> Dict[str, Any]:
    """Apply the supplied fields to the printer configuration; no body changes nothing."""
    config = bridge.update_config(changes or PrinterConfigUpdate())
    return {"success": True, "config": config.to_response()}


# ============================================================================
# Print Operations
# ============================================================================

@router.post("/print", response_model=PrintResult, response_model_exclude_none=True)
async def print_receipt(body: PrintRequest, bridge: Bridge):
    """Compile a receipt description to ESC/POS and send it to the printer."""
    if body.receipt is None:
        raise InvalidReceiptError("Receipt data required")
    message = await bridge.print_receipt(body.receipt)
    return PrintResult(success=True, message=message)


@router.post("/print-kitchen", response_model=PrintResult, response_model_exclude_none=True)
async def print_kitchen(body: KitchenPrintRequest, bridge: Bridge):
    """Print a ticket on the kitchen printer."""
    if body.ticket is None:
        raise InvalidReceiptError("Ticket data required")
    message = await bridge.print_kitchen(body.ticket)
    return PrintResult(success=True, message=message)


@router.post("/print-raw", response_model=PrintResult, response_model_exclude_none=True)
async def print_raw(body: PrintRawRequest, bridge: Bridge):
    """Send base64-encoded ESC/POS bytes unchanged."""
    message = await bridge.print_raw(body.data)
    return PrintResult(success=True, message=message)


@router.post("/drawer", response_model=PrintResult, response_model_exclude_none=True)
async def open_drawer(bridge: Bridge):
    """Pulse the cash drawer connected to the printer."""
    message = await bridge.open_drawer()
    return PrintResult(success=True, message=message)


@router.post("/test-print", response_model=PrintResult, response_model_exclude_none=True)
async def test_print(bridge: Bridge):
    """Print the built-in test receipt."""
    message = await bridge.test_print()
    return PrintResult(success=True, message=message)
