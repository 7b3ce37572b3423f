"""Print dispatch: direct transfer, then the durable job queue, then a print dialog.

Strategies are tried in order and the first one that is available decides the
outcome. A strategy that is not available returns ``None``; one that tried
and failed returns a failed :class:`PrintResult`, which is final.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from posreceipt import persistence
from posreceipt.config import DEDUP_WINDOW_SECONDS, TRANSFER_TIMEOUT_MS
from posreceipt.errors import NoPrintMethod, PosError, TransferError, TransportUnavailable
from posreceipt.models import DocumentKind, PrintableDocument, PrinterDescriptor, PrinterRole, PrintResult
from posreceipt.transport import Transport, transport_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrintRequest:
    kind: DocumentKind
    role: PrinterRole
    data: bytes
    bill_id: str | None = None
    document: PrintableDocument | None = None
    metadata: dict[str, str] = field(default_factory=dict)


def result_from_error(exc: PosError, method: str) -> PrintResult:
    return PrintResult(
        success=False,
        method=method,
        message=exc.message,
        reason=exc.reason,
        hints=exc.hints,
    )


class DirectStrategy:
    method = "direct"

    def __init__(
        self,
        printer_lookup: Callable[[PrinterRole], PrinterDescriptor | None] = persistence.default_printer_for_role,
        transport_factory: Callable[[PrinterDescriptor, int], Transport | None] = transport_for,
        timeout_ms: int = TRANSFER_TIMEOUT_MS,
    ) -> None:
        self.printer_lookup = printer_lookup
        self.transport_factory = transport_factory
        self.timeout_ms = timeout_ms

    def attempt(self, request: PrintRequest) -> PrintResult | None:
        printer = self.printer_lookup(request.role)
        if printer is None:
            logger.info("no active %s printer configured for direct printing", request.role.value)
            return None
        transport = self.transport_factory(printer, self.timeout_ms)
        if transport is None:
            return None
        try:
            transport.send(request.data)
        except TransportUnavailable as exc:
            # Nothing reached the device, so another method may still print it.
            logger.warning("direct transport unavailable for %s: %s", printer.name, exc.message)
            return None
        except TransferError as exc:
            logger.warning("direct print to %s failed (%s): %s", printer.name, exc.reason, exc.message)
            return result_from_error(exc, self.method)
        return PrintResult(
            success=True,
            method=self.method,
            message=f"Printed on {printer.name}",
            details={"printer": printer.name, "address": transport.describe()},
        )


def job_payload(request: PrintRequest) -> str:
    """JSON payload for the print agent: the encoded bytes plus request metadata."""
    return json.dumps(
        {
            "kind": request.kind.value,
            "role": request.role.value,
            "data": base64.b64encode(request.data).decode("ascii"),
            **request.metadata,
        },
        sort_keys=True,
    )


class QueueStrategy:
    method = "queue"

    def __init__(
        self,
        window_seconds: int = DEDUP_WINDOW_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.window_seconds = window_seconds
        self.clock = clock

    def attempt(self, request: PrintRequest) -> PrintResult | None:
        if not request.bill_id:
            return None
        now = self.clock() if self.clock is not None else None
        job, created = persistence.enqueue_print_job(
            request.bill_id,
            request.kind,
            request.role,
            job_payload(request),
            window_seconds=self.window_seconds,
            now=now,
        )
        if not created:
            logger.info("skipping duplicate %s job for %s (pending job %s)", request.kind.value, request.bill_id, job.job_id)
            return PrintResult(
                success=True,
                method=self.method,
                message="Print already queued",
                job_id=job.job_id,
                duplicate=True,
            )
        logger.info("queued %s job %s for %s printer", request.kind.value, job.job_id, request.role.value)
        return PrintResult(success=True, method=self.method, message="Sent to print queue", job_id=job.job_id)


class DialogStrategy:
    """Hand the laid-out document to an interactive print surface, if one is attached."""

    method = "dialog"

    def __init__(self, surface: Callable[[PrintableDocument], None] | None = None) -> None:
        self.surface = surface

    def attempt(self, request: PrintRequest) -> PrintResult | None:
        if self.surface is None or request.document is None:
            return None
        self.surface(request.document)
        logger.info("%s handed to print dialog", request.kind.value)
        return PrintResult(success=True, method=self.method, message="Opened print dialog")


class PrintDispatcher:
    def __init__(self, strategies: Sequence[object] | None = None) -> None:
        self.strategies = list(strategies) if strategies is not None else [
            DirectStrategy(),
            QueueStrategy(),
            DialogStrategy(),
        ]

    def dispatch(self, request: PrintRequest) -> PrintResult:
        for strategy in self.strategies:
            result = strategy.attempt(request)
            if result is not None:
                return result
        logger.warning("no print method available for %s on %s printer", request.kind.value, request.role.value)
        return result_from_error(NoPrintMethod("No print method available"), "none")
