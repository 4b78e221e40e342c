"""Printer configuration and bridge response schemas."""

from __future__ import annotations

import ipaddress
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_NETWORK_PORT = 9100
PAPER_WIDTHS = (58, 80)

# Printer names end up as arguments of OS print commands
_UNSAFE_PRINTER_CHARS = re.compile(r"[<>|&;`$\\]")


class PrinterType(str, Enum):
    LOCAL = "local"
    NETWORK = "network"


# Names older POS builds send for a locally shared printer
_LEGACY_LOCAL_TYPES = {"windows", "usb", "cups"}

_CLEARABLE_FIELDS = ("printer_name", "network_ip", "kitchen_printer_name", "kitchen_network_ip")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PrinterConfiguration(_CamelModel):
    """The bridge's active printer selection."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: PrinterType = PrinterType.LOCAL
    printer_name: Optional[str] = None
    network_ip: Optional[str] = None
    network_port: int = DEFAULT_NETWORK_PORT
    paper_width: int = 80

    # Second printer for kitchen tickets
    kitchen_enabled: bool = False
    kitchen_type: PrinterType = PrinterType.LOCAL
    kitchen_printer_name: Optional[str] = None
    kitchen_network_ip: Optional[str] = None
    kitchen_network_port: int = DEFAULT_NETWORK_PORT
    kitchen_paper_width: int = 80

    @property
    def target(self) -> Optional[str]:
        """Human-readable destination, or None when nothing is selected."""
        if self.type == PrinterType.NETWORK:
            return f"{self.network_ip}:{self.network_port}" if self.network_ip else None
        return self.printer_name

    def kitchen(self) -> Optional[PrinterConfiguration]:
        """The kitchen printer as a printer selection of its own, None when disabled."""
        if not self.kitchen_enabled:
            return None
        return PrinterConfiguration(
            type=self.kitchen_type,
            printer_name=self.kitchen_printer_name,
            network_ip=self.kitchen_network_ip,
            network_port=self.kitchen_network_port,
            paper_width=self.kitchen_paper_width,
        )

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PrinterConfigUpdate(_CamelModel):
    """Partial configuration; only fields present in the body are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: Optional[PrinterType] = None
    printer_name: Optional[str] = None
    network_ip: Optional[str] = None
    network_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    paper_width: Optional[int] = None

    kitchen_enabled: Optional[bool] = None
    kitchen_type: Optional[PrinterType] = None
    kitchen_printer_name: Optional[str] = None
    kitchen_network_ip: Optional[str] = None
    kitchen_network_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    kitchen_paper_width: Optional[int] = None

    @field_validator("type", "kitchen_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str) and v.lower() in _LEGACY_LOCAL_TYPES:
            return PrinterType.LOCAL
        return v

    @field_validator("printer_name", "kitchen_printer_name")
    @classmethod
    def validate_printer_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip() == "":
            return None
        if len(v) > 255:
            raise ValueError("Invalid printer name: too long")
        if _UNSAFE_PRINTER_CHARS.search(v):
            raise ValueError("Invalid printer name. Please select from detected printers.")
        return v

    @field_validator("network_ip", "kitchen_network_ip")
    @classmethod
    def validate_network_ip(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip() == "":
            return None
        try:
            ipaddress.IPv4Address(v.strip())
        except ValueError:
            raise ValueError("Invalid network IP address")
        return v.strip()

    @field_validator("paper_width", "kitchen_paper_width")
    @classmethod
    def validate_paper_width(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v not in PAPER_WIDTHS:
            raise ValueError("Paper width must be 58 or 80")
        return v

    def apply_to(self, config: PrinterConfiguration) -> PrinterConfiguration:
        """New configuration with the supplied fields replaced."""
        changes = {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            # names and addresses may be cleared with null, the rest may not
            if value is not None or key in _CLEARABLE_FIELDS
        }
        return config.model_copy(update=changes)


class PrinterInfo(BaseModel):
    type: str
    name: str


class PrintersResponse(BaseModel):
    printers: List[PrinterInfo] = []
    error: Optional[str] = None


class PrintResult(BaseModel):
    success: bool
    message: str = ""
    error: Optional[str] = None


class BridgeStatus(BaseModel):
    """What a capability check reports back to the POS."""

    is_available: bool
    version: Optional[str] = None
    service: Optional[str] = None
    platform: Optional[str] = None
    requires_auth: bool = False
    printer: Optional[PrinterConfiguration] = None
