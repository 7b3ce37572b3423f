"""Error taxonomy shared by the order, rendering, transport and dispatch layers.

Every error carries a short machine ``reason`` code and at least one
human-readable remediation hint so the operator is never left with a bare
error code.
"""

from __future__ import annotations

from typing import Iterable


class PosError(Exception):
    """Base class for pipeline errors."""

    reason = "pos_error"
    default_hints: tuple[str, ...] = ("Try the action again",)

    def __init__(self, message: str, hints: Iterable[str] | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason
        self.hints = tuple(hints) if hints else self.default_hints


class ValidationError(PosError, ValueError):
    """Rejected synchronously, before any I/O."""

    reason = "validation_error"
    default_hints = ("Check the order and try again",)


class UnknownLine(ValidationError):
    reason = "unknown_line"
    default_hints = ("Refresh the order; the line may have been removed",)


class InvalidQuantity(ValidationError):
    reason = "invalid_quantity"
    default_hints = ("Quantity must be a whole number of at least 1",)


class LineLocked(ValidationError):
    """A kitchen-printed line may only grow."""

    reason = "line_locked"
    default_hints = (
        "Items already sent to the kitchen cannot be reduced or removed",
        "Add a note or settle the difference on the bill instead",
    )


class InvalidDiscount(ValidationError):
    reason = "invalid_discount"
    default_hints = ("Enter a discount between 0 and the bill subtotal",)


class EmptyDocument(ValidationError):
    reason = "empty_document"
    default_hints = ("Add at least one item before printing",)


class TransferError(PosError, RuntimeError):
    """The printer could not take the bytes."""

    reason = "transfer_failed"
    default_hints = ("Restart the printer", "Reconnect the printer")


class TransportUnavailable(TransferError):
    reason = "transport_unavailable"
    default_hints = ("Install the USB driver stack (libusb)", "Check if antivirus is blocking USB access")


class DeviceNotFound(TransferError):
    reason = "device_not_found"
    default_hints = (
        "Ensure the USB cable is securely connected",
        "Check if the printer is powered ON",
        "Try a different USB port",
    )


class InterfaceUnavailable(TransferError):
    reason = "interface_unavailable"
    default_hints = ("Restart the printer", "Reconnect USB cable")


class EndpointNotFound(TransferError):
    reason = "endpoint_not_found"
    default_hints = ("Restart printer", "Try different USB port")


class TransferTimeout(TransferError):
    reason = "transfer_timeout"
    default_hints = ("Check the paper roll", "Power cycle the printer", "Check the cable or network link")


class TransferFault(TransferError):
    reason = "transfer_fault"
    default_hints = ("Check paper roll", "Restart printer")


class DispatchError(PosError, RuntimeError):
    reason = "dispatch_error"


class NoPrintMethod(DispatchError):
    reason = "no_print_method"
    default_hints = (
        "Configure and activate a printer for this role",
        "Start the local print agent",
    )


class PrintInProgress(DispatchError):
    reason = "print_in_progress"
    default_hints = ("Wait for the current print to finish",)
