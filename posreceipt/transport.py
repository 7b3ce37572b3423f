"""Byte transports to thermal printers.

USB transfers go through pyusb in explicit stages (find, configure, locate the
OUT endpoint, claim, write) so each failure surfaces as its own error with
remediation hints. Network printers take raw bytes on a TCP socket.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass

from posreceipt.config import NETWORK_PRINTER_PORT, PROBE_TIMEOUT_MS, TRANSFER_TIMEOUT_MS
from posreceipt.errors import (
    DeviceNotFound,
    EndpointNotFound,
    InterfaceUnavailable,
    TransferFault,
    TransferTimeout,
    TransportUnavailable,
)
from posreceipt.models import PrinterDescriptor, TransportKind

logger = logging.getLogger(__name__)

_INTERFACE = (0, 0)


@dataclass(frozen=True)
class PrinterStatus:
    state: str
    message: str
    hints: tuple[str, ...] = ()

    @property
    def connected(self) -> bool:
        return self.state == "connected"


def load_usb() -> tuple[object, object]:
    try:
        import usb.core
        import usb.util
    except ImportError as exc:
        raise TransportUnavailable(f"USB support not available: {exc}") from exc
    return usb.core, usb.util


def check_printer_dependencies() -> tuple[bool, str]:
    """Check whether printer dependencies are importable."""
    try:
        import escpos.constants  # noqa: F401
        import PIL.Image  # noqa: F401

        load_usb()
    except (ImportError, TransportUnavailable) as exc:
        return (False, f"Printer deps unavailable: {exc}")
    return (True, "Printer ready")


class Transport:
    """A destination that accepts a complete ESC/POS byte stream."""

    kind: TransportKind

    def send(self, data: bytes) -> None:
        raise NotImplementedError

    def probe(self) -> PrinterStatus:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


class UsbTransport(Transport):
    kind = TransportKind.USB

    def __init__(self, vendor_id: int, product_id: int, timeout_ms: int = TRANSFER_TIMEOUT_MS) -> None:
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.timeout_ms = timeout_ms

    def describe(self) -> str:
        return f"usb:{self.vendor_id:04x}:{self.product_id:04x}"

    def _find(self, usb_core: object) -> object | None:
        try:
            return usb_core.find(idVendor=self.vendor_id, idProduct=self.product_id)
        except usb_core.NoBackendError as exc:
            raise TransportUnavailable(f"No USB backend available: {exc}") from exc

    def send(self, data: bytes) -> None:
        usb_core, usb_util = load_usb()
        device = self._find(usb_core)
        if device is None:
            raise DeviceNotFound(f"Printer {self.describe()} not found. Check connection.")

        interface_number: int | None = None
        try:
            self._detach_kernel_driver(device, usb_core)
            try:
                device.set_configuration()
                interface = device.get_active_configuration()[_INTERFACE]
            except (usb_core.USBError, IndexError, KeyError) as exc:
                raise InterfaceUnavailable(f"Printer interface not available: {exc}") from exc

            endpoint = usb_util.find_descriptor(
                interface,
                custom_match=lambda ep: usb_util.endpoint_direction(ep.bEndpointAddress) == usb_util.ENDPOINT_OUT,
            )
            if endpoint is None:
                raise EndpointNotFound("Printer endpoint not found")

            try:
                usb_util.claim_interface(device, interface.bInterfaceNumber)
            except usb_core.USBError as exc:
                raise InterfaceUnavailable(f"Printer interface is busy: {exc}") from exc
            interface_number = interface.bInterfaceNumber

            try:
                written = endpoint.write(data, timeout=self.timeout_ms)
            except usb_core.USBTimeoutError as exc:
                raise TransferTimeout(f"Printer did not accept data within {self.timeout_ms} ms") from exc
            except usb_core.USBError as exc:
                raise TransferFault(f"Print transfer error: {exc}") from exc
            if written is not None and written < len(data):
                raise TransferFault(f"Printer accepted {written} of {len(data)} bytes")
            logger.info("sent %d bytes to %s", len(data), self.describe())
        finally:
            if interface_number is not None:
                try:
                    usb_util.release_interface(device, interface_number)
                except usb_core.USBError as exc:
                    logger.warning("could not release %s interface %s: %s", self.describe(), interface_number, exc)
            usb_util.dispose_resources(device)

    def _detach_kernel_driver(self, device: object, usb_core: object) -> None:
        # Linux binds usblp to most printers; other platforms do not implement this.
        try:
            if device.is_kernel_driver_active(_INTERFACE[0]):
                device.detach_kernel_driver(_INTERFACE[0])
        except (NotImplementedError, usb_core.USBError) as exc:
            logger.debug("kernel driver check skipped for %s: %s", self.describe(), exc)

    def probe(self) -> PrinterStatus:
        try:
            usb_core, _ = load_usb()
            device = self._find(usb_core)
        except TransportUnavailable as exc:
            return PrinterStatus("unavailable", exc.message, exc.hints)
        except Exception as exc:
            logger.warning("status probe for %s failed: %s", self.describe(), exc)
            return PrinterStatus("error", str(exc), ("Restart the application",))
        if device is None:
            return PrinterStatus("disconnected", "Printer not found", DeviceNotFound.default_hints)
        return PrinterStatus("connected", "Printer is ready")


class NetworkTransport(Transport):
    kind = TransportKind.NETWORK

    def __init__(self, host: str, port: int = NETWORK_PRINTER_PORT, timeout_ms: int = TRANSFER_TIMEOUT_MS) -> None:
        self.host = host
        self.port = port
        self.timeout_ms = timeout_ms

    def describe(self) -> str:
        return f"tcp:{self.host}:{self.port}"

    def _connect(self, timeout_ms: int) -> socket.socket:
        try:
            return socket.create_connection((self.host, self.port), timeout=timeout_ms / 1000)
        except socket.timeout as exc:
            raise TransferTimeout(
                f"No answer from {self.describe()} within {timeout_ms} ms",
                hints=("Check the printer is powered ON", "Check the network cable"),
            ) from exc
        except OSError as exc:
            raise DeviceNotFound(
                f"Cannot reach printer at {self.describe()}: {exc}",
                hints=("Check the printer IP address", "Ensure the printer is on the same network"),
            ) from exc

    def send(self, data: bytes) -> None:
        with self._connect(self.timeout_ms) as sock:
            try:
                sock.sendall(data)
            except socket.timeout as exc:
                raise TransferTimeout(f"Printer at {self.describe()} stopped accepting data") from exc
            except OSError as exc:
                raise TransferFault(f"Print transfer error: {exc}") from exc
        logger.info("sent %d bytes to %s", len(data), self.describe())

    def probe(self) -> PrinterStatus:
        try:
            with self._connect(PROBE_TIMEOUT_MS):
                pass
        except (TransferTimeout, DeviceNotFound) as exc:
            return PrinterStatus("disconnected", exc.message, exc.hints)
        return PrinterStatus("connected", "Printer is ready")


def transport_for(printer: PrinterDescriptor, timeout_ms: int = TRANSFER_TIMEOUT_MS) -> Transport | None:
    """Direct transport for a configured printer; queued printers have none."""
    if printer.transport is TransportKind.USB and printer.vendor_id is not None and printer.product_id is not None:
        return UsbTransport(printer.vendor_id, printer.product_id, timeout_ms)
    if printer.transport is TransportKind.NETWORK and printer.host:
        return NetworkTransport(printer.host, printer.port or NETWORK_PRINTER_PORT, timeout_ms)
    return None
