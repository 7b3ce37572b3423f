from __future__ import annotations

import sys
import types
from decimal import Decimal

import pytest

from posreceipt import config, persistence
from posreceipt.errors import TransferError
from posreceipt.models import OrderLine, TransportKind
from posreceipt.transport import PrinterStatus, Transport


@pytest.fixture
def db(tmp_path, monkeypatch):
    path = tmp_path / "pos.db"
    monkeypatch.setattr(config, "DB_PATH", str(path))
    persistence.bootstrap_schema()
    return path


def make_line(
    line_id: str = "l1",
    quantity: int = 1,
    price: str = "100",
    rate: str = "5",
    name: str = "Item",
    **kwargs,
) -> OrderLine:
    return OrderLine(
        line_id=line_id,
        product_id=kwargs.pop("product_id", line_id),
        name=name,
        quantity=quantity,
        unit_price=Decimal(price),
        tax_rate=Decimal(rate),
        **kwargs,
    )


class RecordingTransport(Transport):
    kind = TransportKind.USB

    def __init__(self, error: TransferError | None = None) -> None:
        self.error = error
        self.sent: list[bytes] = []

    def send(self, data: bytes) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(data)

    def probe(self) -> PrinterStatus:
        return PrinterStatus("connected", "Printer is ready")

    def describe(self) -> str:
        return "usb:fake"


class FakeUSBError(IOError):
    pass


class FakeUSBTimeoutError(FakeUSBError):
    pass


class FakeNoBackendError(ValueError):
    pass


class FakeEndpoint:
    def __init__(self, address: int, bus: "FakeUsb") -> None:
        self.bEndpointAddress = address
        self.bus = bus

    def write(self, data, timeout=None):
        self.bus.calls.append(("write", len(data), timeout))
        if self.bus.write_error is not None:
            raise self.bus.write_error
        return len(data)


class FakeInterface:
    def __init__(self, endpoints: list[FakeEndpoint]) -> None:
        self.bInterfaceNumber = 0
        self.endpoints = endpoints


class FakeDevice:
    def __init__(self, bus: "FakeUsb", vendor: int, product: int, strings: dict[int, str] | None = None) -> None:
        self.bus = bus
        self.idVendor = vendor
        self.idProduct = product
        self.iProduct = 2 if strings and 2 in strings else 0
        self.iManufacturer = 1 if strings and 1 in strings else 0
        self.strings = strings or {}
        self.interface = FakeInterface([FakeEndpoint(0x81, bus), FakeEndpoint(0x01, bus)])

    def is_kernel_driver_active(self, number):
        return False

    def set_configuration(self):
        self.bus.calls.append(("set_configuration",))
        if self.bus.configure_error is not None:
            raise self.bus.configure_error

    def get_active_configuration(self):
        return {(0, 0): self.interface}


class FakeUsb:
    """In-memory stand-in for the ``usb.core`` / ``usb.util`` module pair."""

    def __init__(self) -> None:
        self.devices: list[FakeDevice] = []
        self.calls: list[tuple] = []
        self.configure_error: Exception | None = None
        self.claim_error: Exception | None = None
        self.write_error: Exception | None = None
        self.unreadable_strings = False

        self.core = types.ModuleType("usb.core")
        self.core.USBError = FakeUSBError
        self.core.USBTimeoutError = FakeUSBTimeoutError
        self.core.NoBackendError = FakeNoBackendError
        self.core.find = self.find

        self.util = types.ModuleType("usb.util")
        self.util.ENDPOINT_OUT = 0x00
        self.util.ENDPOINT_IN = 0x80
        self.util.endpoint_direction = lambda address: address & 0x80
        self.util.find_descriptor = self.find_descriptor
        self.util.claim_interface = self.claim_interface
        self.util.release_interface = lambda device, number: self.calls.append(("release", number))
        self.util.dispose_resources = lambda device: self.calls.append(("dispose",))
        self.util.get_string = self.get_string

        self.package = types.ModuleType("usb")
        self.package.core = self.core
        self.package.util = self.util

    def add_device(self, vendor: int, product: int, strings: dict[int, str] | None = None) -> FakeDevice:
        device = FakeDevice(self, vendor, product, strings)
        self.devices.append(device)
        return device

    def find(self, find_all=False, idVendor=None, idProduct=None):
        if find_all:
            return iter(self.devices)
        for device in self.devices:
            if device.idVendor == idVendor and device.idProduct == idProduct:
                return device
        return None

    def find_descriptor(self, interface, custom_match):
        for endpoint in interface.endpoints:
            if custom_match(endpoint):
                return endpoint
        return None

    def claim_interface(self, device, number):
        self.calls.append(("claim", number))
        if self.claim_error is not None:
            raise self.claim_error

    def get_string(self, device, index):
        if self.unreadable_strings:
            raise FakeUSBError("Access denied (insufficient permissions)")
        return device.strings.get(index)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_usb(monkeypatch):
    bus = FakeUsb()
    monkeypatch.setitem(sys.modules, "usb", bus.package)
    monkeypatch.setitem(sys.modules, "usb.core", bus.core)
    monkeypatch.setitem(sys.modules, "usb.util", bus.util)
    return bus
