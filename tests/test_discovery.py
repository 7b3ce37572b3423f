import sys

import pytest

from posreceipt import discovery, persistence
from posreceipt.discovery import (
    auto_add,
    descriptor_for,
    detect_paper,
    detect_role,
    discover_usb_printers,
    is_configured,
    is_thermal_vendor,
)
from posreceipt.models import DiscoveredPrinter, PaperWidth, PrinterDescriptor, PrinterRole, TransportKind


def test_no_whitelisted_vendor_yields_empty_list(fake_usb, monkeypatch):
    fake_usb.add_device(0x046D, 0xC52B, {2: "USB Receiver"})
    fake_usb.add_device(0x8087, 0x0A2B)

    def fail(*args, **kwargs):
        raise AssertionError("role heuristic must not run")

    monkeypatch.setattr(discovery, "detect_role", fail)

    assert discover_usb_printers() == []


def test_discovers_whitelisted_printers(fake_usb):
    fake_usb.add_device(0x0416, 0x5011, {1: "Winbond Electronics", 2: "Kitchen POS-80"})
    fake_usb.add_device(0x046D, 0xC52B, {2: "Mouse"})

    found = discover_usb_printers()

    assert found == [
        DiscoveredPrinter(
            name="Kitchen POS-80",
            transport=TransportKind.USB,
            vendor_id=0x0416,
            product_id=0x5011,
            manufacturer="Winbond Electronics",
        )
    ]


def test_unreadable_strings_fall_back_to_generic_names(fake_usb):
    fake_usb.add_device(0x20D1, 0x7008, {1: "Xprinter", 2: "XP-58"})
    fake_usb.unreadable_strings = True

    [printer] = discover_usb_printers()

    assert printer.name == "Thermal Printer"
    assert printer.manufacturer == "Xprinter"


def test_missing_usb_stack_yields_empty_list(monkeypatch):
    monkeypatch.setitem(sys.modules, "usb", None)
    monkeypatch.setitem(sys.modules, "usb.core", None)

    assert discover_usb_printers() == []


@pytest.mark.parametrize(
    "name, role",
    [
        ("Kitchen Printer", PrinterRole.KITCHEN),
        ("KOT-2", PrinterRole.KITCHEN),
        ("Back office", PrinterRole.KITCHEN),
        ("Bar Counter", PrinterRole.BAR),
        ("Beverage station", PrinterRole.BAR),
        ("Front Desk", PrinterRole.COUNTER),
        ("XP-80C", PrinterRole.COUNTER),
    ],
)
def test_role_from_name(name, role):
    assert detect_role(name) is role


def test_first_matching_role_rule_wins():
    rules = [(lambda name: "x" in name, PrinterRole.BAR), (lambda name: True, PrinterRole.KITCHEN)]

    assert detect_role("xp", rules) is PrinterRole.BAR
    assert detect_role("pos", rules) is PrinterRole.KITCHEN


def test_paper_from_name():
    assert detect_paper("POS-58mm") is PaperWidth.NARROW
    assert detect_paper("Epson 76 mm") is PaperWidth.MEDIUM
    assert detect_paper("Thermal Printer") is PaperWidth.WIDE


def test_thermal_vendor_whitelist():
    assert is_thermal_vendor(0x04B8)
    assert not is_thermal_vendor(0x046D)
    assert is_thermal_vendor(None)


def test_is_configured_matches_address_then_name():
    existing = [
        PrinterDescriptor("a", "Counter", TransportKind.USB, vendor_id=0x0416, product_id=0x5011),
        PrinterDescriptor("b", "Kitchen LAN", TransportKind.NETWORK, role=PrinterRole.KITCHEN, host="10.0.0.5"),
    ]

    assert is_configured(DiscoveredPrinter("Other name", TransportKind.USB, vendor_id=0x0416, product_id=0x5011), existing)
    assert not is_configured(DiscoveredPrinter("Counter", TransportKind.USB, vendor_id=0x04B8, product_id=0x0202), existing)
    assert is_configured(DiscoveredPrinter("Any", TransportKind.NETWORK, host="10.0.0.5"), existing)
    assert is_configured(DiscoveredPrinter("counter", TransportKind.QUEUED), existing)


def test_descriptor_for_network_printer_uses_default_port():
    descriptor = descriptor_for(DiscoveredPrinter("Bar 58mm", TransportKind.NETWORK, host="10.0.0.7"), [])

    assert descriptor.role is PrinterRole.BAR
    assert descriptor.paper is PaperWidth.NARROW
    assert descriptor.port == 9100
    assert descriptor.is_default


def test_auto_add_assigns_one_default_per_role(db):
    found = [
        DiscoveredPrinter("Kitchen 80mm", TransportKind.USB, vendor_id=0x0416, product_id=0x5011),
        DiscoveredPrinter("KOT backup", TransportKind.USB, vendor_id=0x20D1, product_id=0x7008),
        DiscoveredPrinter("Counter", TransportKind.USB, vendor_id=0x04B8, product_id=0x0202),
    ]

    assert auto_add(found) == (3, 0)

    kitchen = persistence.list_printers(role=PrinterRole.KITCHEN)
    assert {p.name: p.is_default for p in kitchen} == {"Kitchen 80mm": True, "KOT backup": False}
    assert persistence.default_printer_for_role(PrinterRole.KITCHEN).name == "Kitchen 80mm"
    assert persistence.default_printer_for_role(PrinterRole.COUNTER).name == "Counter"


def test_auto_add_skips_configured_and_foreign_devices(db):
    printer = DiscoveredPrinter("Counter", TransportKind.USB, vendor_id=0x04B8, product_id=0x0202)
    auto_add([printer])

    added, skipped = auto_add(
        [printer, DiscoveredPrinter("Webcam", TransportKind.USB, vendor_id=0x046D, product_id=0x0825)]
    )

    assert (added, skipped) == (0, 2)
    assert len(persistence.list_printers()) == 1
