"""Error taxonomy for the print bridge.

Every error carries the HTTP status the bridge answers with, so handlers can
let them propagate and the application-level exception handler renders the
``{"success": false, "error": ...}`` body.
"""

from typing import Optional


class PrintBridgeError(Exception):
    """Base class for errors reported back to the POS."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotConfiguredError(PrintBridgeError):
    """No printer selected for the active printer type."""

    status_code = 400

    def __init__(self, message: str = "No printer configured. Go to Settings in Flowp to select a printer."):
        super().__init__(message)


class InvalidReceiptError(PrintBridgeError):
    """Receipt description cannot be turned into a printable payload."""

    status_code = 400


class AuthenticationError(PrintBridgeError):
    """Missing or invalid bridge token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NetworkDeliveryError(PrintBridgeError):
    """TCP connect/write to a network printer failed or timed out."""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None):
        self.host = host
        self.port = port
        super().__init__(message)


class LocalSpoolError(PrintBridgeError):
    """Both OS print commands failed for a local printer."""

    def __init__(self, message: str, printer_name: Optional[str] = None):
        self.printer_name = printer_name
        super().__init__(message)


class PrinterDiscoveryError(PrintBridgeError):
    """The OS printer listing command failed."""


class InvalidPayloadError(PrintBridgeError):
    """Raw print data missing, not base64, or too large."""

    status_code = 400
