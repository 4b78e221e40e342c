"""Pytest configuration and fixtures."""

import socket
import threading
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient

from printbridge.core.config import Settings
from printbridge.main import create_app
from printbridge.services.bridge import PrintBridgeService


class FakeNetworkPrinter:
    """TCP listener standing in for a port-9100 receipt printer.

    Every connection is one job; its bytes are recorded once the bridge
    closes the write side.
    """

    def __init__(self):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self.host, self.port = self._sock.getsockname()
        self.jobs: List[bytes] = []
        self._cond = threading.Condition()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while True:
            try:
                conn, _ = self._sock.accept()
            except OSError:
                return
            chunks = []
            with conn:
                conn.settimeout(5)
                while True:
                    try:
                        data = conn.recv(4096)
                    except OSError:
                        break
                    if not data:
                        break
                    chunks.append(data)
            with self._cond:
                self.jobs.append(b"".join(chunks))
                self._cond.notify_all()

    def wait_for_jobs(self, count: int = 1, timeout: float = 5.0) -> List[bytes]:
        with self._cond:
            self._cond.wait_for(lambda: len(self.jobs) >= count, timeout=timeout)
            return list(self.jobs)

    def close(self) -> None:
        # shutdown wakes the accept() call blocked in the serving thread
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        self._thread.join(timeout=1)


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "require_auth": False,
        "spool_backend": "cups",
        "config_path": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def bridge(settings: Settings) -> PrintBridgeService:
    return PrintBridgeService(settings)


@pytest.fixture
def app(settings: Settings, bridge: PrintBridgeService):
    return create_app(settings, bridge)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client; server exceptions become responses so status codes can be checked."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def network_printer() -> Generator[FakeNetworkPrinter, None, None]:
    printer = FakeNetworkPrinter()
    yield printer
    printer.close()


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def cafe_receipt() -> dict:
    return {
        "businessName": "Cafe X",
        "items": [{"name": "Coffee", "quantity": 2, "total": 5.00}],
        "subtotal": 5.00,
        "tax": 0.5,
        "taxRate": 10,
        "total": 5.50,
        "currency": "USD",
    }


@pytest.fixture
def full_receipt() -> dict:
    return {
        "businessName": "Cafe X",
        "headerText": "Fresh coffee since 1999",
        "address": "Calle 10 # 5-20",
        "phone": "555-0100",
        "taxId": "900123456-7",
        "orderNumber": "1042",
        "date": "2026-10-17 09:30",
        "cashier": "Ana",
        "customer": "Walk-in",
        "items": [
            {"name": "Coffee", "quantity": 2, "unitPrice": 2.50, "total": 5.00},
            {"name": "Croissant", "quantity": 1, "total": 3.25, "modifiers": "Warm, extra butter"},
        ],
        "subtotal": 8.25,
        "discount": 0.83,
        "discountPercent": 10,
        "tax": 0.74,
        "taxRate": 10,
        "total": 8.16,
        "payments": [
            {"type": "cash", "amount": 5.00},
            {"type": "card", "amount": 5.00, "transactionId": "TX-998877"},
        ],
        "change": 1.84,
        "currency": "USD",
        "footerText": "Thank you for your visit!",
    }


@pytest.fixture
def settings_factory():
    """Build Settings with test defaults plus the given overrides."""
    return make_settings
