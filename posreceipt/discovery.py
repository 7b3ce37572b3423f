"""Printer discovery and auto-configuration heuristics."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, Sequence

from posreceipt import persistence
from posreceipt.config import NETWORK_PRINTER_PORT
from posreceipt.errors import TransportUnavailable
from posreceipt.models import DiscoveredPrinter, PaperWidth, PrinterDescriptor, PrinterRole, TransportKind
from posreceipt.transport import load_usb

logger = logging.getLogger(__name__)

# USB vendor ids of known ESC/POS thermal printer makers and their bridge chips.
THERMAL_PRINTER_VENDORS: dict[int, str] = {
    0x0416: "Winbond",
    0x0483: "STMicroelectronics",
    0x0525: "PLX Technology",
    0x04B8: "Epson",
    0x0519: "Star Micronics",
    0x067B: "Prolific",
    0x0DD4: "Custom Engineering",
    0x0FE6: "ICS",
    0x154F: "SNBC",
    0x1504: "SNBC",
    0x1A86: "QinHeng",
    0x1CB0: "GP Printer",
    0x1FC9: "NXP",
    0x20D1: "Xprinter",
    0x28E9: "GD32",
    0x416D: "MUNBYN",
    0x4B43: "XP-80C",
}

GENERIC_PRINTER_NAME = "Thermal Printer"

RoleRule = tuple[Callable[[str], bool], PrinterRole]


def _name_matches(*words: str) -> Callable[[str], bool]:
    pattern = re.compile("|".join(re.escape(word) for word in words), re.IGNORECASE)
    return lambda name: pattern.search(name) is not None


# Evaluated top to bottom; the first matching predicate wins.
ROLE_RULES: list[RoleRule] = [
    (_name_matches("kitchen", "kot", "cook", "chef", "food", "back", "prep"), PrinterRole.KITCHEN),
    (_name_matches("bar", "drink", "beverage", "cocktail"), PrinterRole.BAR),
    (_name_matches("counter", "receipt", "bill", "cashier", "front", "pos", "main"), PrinterRole.COUNTER),
]

PAPER_RULES: list[tuple[Callable[[str], bool], PaperWidth]] = [
    (_name_matches("58mm", "58 mm"), PaperWidth.NARROW),
    (_name_matches("76mm", "76 mm"), PaperWidth.MEDIUM),
    (_name_matches("80mm", "80 mm"), PaperWidth.WIDE),
]


def detect_role(name: str, rules: Sequence[RoleRule] = ROLE_RULES) -> PrinterRole:
    for predicate, role in rules:
        if predicate(name):
            return role
    return PrinterRole.COUNTER


def detect_paper(name: str) -> PaperWidth:
    for predicate, paper in PAPER_RULES:
        if predicate(name):
            return paper
    return PaperWidth.WIDE


def is_thermal_vendor(vendor_id: int | None) -> bool:
    # Network printers carry no vendor id and are assumed to be thermal.
    if vendor_id is None:
        return True
    return vendor_id in THERMAL_PRINTER_VENDORS


def _read_string(usb_util: object, device: object, index: int) -> str:
    if not index:
        return ""
    try:
        return usb_util.get_string(device, index) or ""
    except Exception as exc:
        # The device may be claimed by another process; the descriptor is optional.
        logger.debug("string descriptor %s unreadable on %04x:%04x: %s", index, device.idVendor, device.idProduct, exc)
        return ""


def discover_usb_printers() -> list[DiscoveredPrinter]:
    """Scan the USB bus for whitelisted thermal printer vendors.

    Discovery never raises: a missing USB stack or backend yields an empty list.
    """
    try:
        usb_core, usb_util = load_usb()
        devices = list(usb_core.find(find_all=True))
    except (TransportUnavailable, ValueError, OSError) as exc:
        logger.warning("USB discovery unavailable: %s", exc)
        return []

    found: list[DiscoveredPrinter] = []
    for device in devices:
        vendor = THERMAL_PRINTER_VENDORS.get(device.idVendor)
        if vendor is None:
            continue
        name = _read_string(usb_util, device, device.iProduct) or GENERIC_PRINTER_NAME
        manufacturer = _read_string(usb_util, device, device.iManufacturer) or vendor
        found.append(
            DiscoveredPrinter(
                name=name,
                transport=TransportKind.USB,
                vendor_id=device.idVendor,
                product_id=device.idProduct,
                manufacturer=manufacturer,
            )
        )
        logger.debug("found %s (%s) at %04x:%04x", name, manufacturer, device.idVendor, device.idProduct)
    logger.info("USB discovery found %d printer(s)", len(found))
    return found


def is_configured(discovered: DiscoveredPrinter, existing: Iterable[PrinterDescriptor]) -> bool:
    """Whether ``discovered`` already matches a configured printer by address, else by name."""
    for printer in existing:
        if discovered.transport is TransportKind.USB and printer.transport is TransportKind.USB:
            if printer.vendor_id == discovered.vendor_id and printer.product_id == discovered.product_id:
                return True
            continue
        if discovered.transport is TransportKind.NETWORK and printer.transport is TransportKind.NETWORK:
            if printer.host == discovered.host:
                return True
            continue
        if printer.name.lower() == discovered.name.lower():
            return True
    return False


def descriptor_for(discovered: DiscoveredPrinter, existing: Sequence[PrinterDescriptor]) -> PrinterDescriptor:
    role = detect_role(discovered.name)
    has_default = any(p.role is role and p.is_default and p.is_active for p in existing)
    return PrinterDescriptor(
        printer_id="",
        name=discovered.name,
        transport=discovered.transport,
        role=role,
        paper=detect_paper(discovered.name),
        vendor_id=discovered.vendor_id,
        product_id=discovered.product_id,
        host=discovered.host,
        port=(discovered.port or NETWORK_PRINTER_PORT) if discovered.transport is TransportKind.NETWORK else None,
        manufacturer=discovered.manufacturer,
        is_active=True,
        is_default=not has_default,
    )


def auto_add(discovered: Iterable[DiscoveredPrinter]) -> tuple[int, int]:
    """Register newly seen printers; the first printer of a role becomes its default.

    Returns ``(added, skipped)``.
    """
    added = skipped = 0
    for printer in discovered:
        existing = persistence.list_printers()
        if is_configured(printer, existing):
            logger.info("printer %s already configured, skipping", printer.name)
            skipped += 1
            continue
        if printer.transport is TransportKind.USB and not is_thermal_vendor(printer.vendor_id):
            logger.info("printer %s is not a thermal printer, skipping", printer.name)
            skipped += 1
            continue
        descriptor = persistence.add_printer(descriptor_for(printer, existing))
        logger.info("added %s as %s printer (%s)", descriptor.name, descriptor.role.value, descriptor.paper.label)
        added += 1
    return added, skipped
