"""Order-to-printer pipeline: totals, layout, encoding and dispatch in one place."""

from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Sequence

from posreceipt import config, persistence
from posreceipt.dispatcher import PrintDispatcher, PrintRequest
from posreceipt.document import build_bill_document, build_ticket_document
from posreceipt.encoder import cash_drawer_command, encode_document_text, encode_raster, encode_self_test
from posreceipt.errors import PrintInProgress
from posreceipt.models import (
    BusinessIdentity,
    DeltaLine,
    DocumentKind,
    PaperWidth,
    PrintableDocument,
    PrinterRole,
    PrintResult,
)
from posreceipt.order import OrderSession
from posreceipt.raster import render_bill_raster

logger = logging.getLogger(__name__)


def default_identity() -> BusinessIdentity:
    return BusinessIdentity(
        name=config.BUSINESS_NAME,
        address=config.BUSINESS_ADDRESS,
        phone=config.BUSINESS_PHONE,
        tax_id=config.BUSINESS_GSTIN,
        license_id=config.BUSINESS_FSSAI,
        currency_symbol=config.CURRENCY_SYMBOL,
    )


def delta_fingerprint(delta: Sequence[DeltaLine]) -> str:
    """Stable key for one kitchen delta; a resend of the same delta maps to the same key."""
    digest = hashlib.sha1()
    for item in delta:
        digest.update(f"{item.line_id}:{item.quantity}:{item.printed_through};".encode("utf-8"))
    return digest.hexdigest()[:12]


def encode_bill(document: PrintableDocument) -> bytes:
    """Raster bytes for a bill, or text-mode bytes when the bitmap cannot be rendered."""
    try:
        return encode_raster(render_bill_raster(document))
    except (ImportError, OSError, ValueError) as exc:
        logger.warning("raster bill rendering unavailable, using text mode: %s", exc)
        return encode_document_text(document)


class PrintPipeline:
    def __init__(
        self,
        dispatcher: PrintDispatcher | None = None,
        identity: BusinessIdentity | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.dispatcher = dispatcher or PrintDispatcher()
        self.identity = identity or default_identity()
        self.clock = clock
        self._in_flight: set[str] = set()

    @contextmanager
    def _exclusive(self, order_id: str) -> Iterator[None]:
        if order_id in self._in_flight:
            raise PrintInProgress(f"A print for order {order_id} is already in progress")
        self._in_flight.add(order_id)
        try:
            yield
        finally:
            self._in_flight.discard(order_id)

    def paper_for(self, role: PrinterRole) -> PaperWidth:
        printer = persistence.default_printer_for_role(role)
        return printer.paper if printer is not None else PaperWidth.WIDE

    def print_kitchen_ticket(self, session: OrderSession, role: PrinterRole = PrinterRole.KITCHEN) -> PrintResult:
        """Print what the kitchen has not seen yet and commit it once the print succeeds."""
        delta = list(session.pending_delta())
        if not delta:
            return PrintResult(success=True, method="none", message="No new items for the kitchen")

        with self._exclusive(session.order_id):
            today = self.clock().date()
            kot_number = persistence.next_kot_number(today)
            document = build_ticket_document(
                delta,
                kot_number=kot_number,
                table_label=session.table_label,
                paper=self.paper_for(role),
                printed_at=self.clock(),
            )
            request = PrintRequest(
                kind=DocumentKind.TICKET,
                role=role,
                data=encode_document_text(document),
                bill_id=f"{session.order_id}:{delta_fingerprint(delta)}",
                document=document,
                metadata={"kot_number": kot_number, "table": session.table_label},
            )
            result = self.dispatcher.dispatch(request)
            if result.duplicate:
                # The pending job already carries its own number.
                persistence.release_kot_number(kot_number, today)
            if result.success:
                committed = session.commit_kitchen_send(delta)
                logger.info("KOT %s for %s committed %d line(s) via %s", kot_number, session.table_label, committed, result.method)
            else:
                persistence.release_kot_number(kot_number, today)
                logger.warning("KOT %s for %s not printed, delta kept pending: %s", kot_number, session.table_label, result.message)
            return result

    def print_bill(
        self,
        session: OrderSession,
        role: PrinterRole = PrinterRole.COUNTER,
        reprint: bool = False,
    ) -> PrintResult:
        with self._exclusive(session.order_id):
            totals = session.totals()
            if session.bill_number is None and session.lines:
                session.bill_number = persistence.next_bill_number(self.clock().date())
            document = build_bill_document(
                session.lines,
                totals,
                self.identity,
                bill_number=session.bill_number or "",
                table_label=session.table_label,
                paper=self.paper_for(role),
                printed_at=self.clock(),
                reprint=reprint,
            )
            request = PrintRequest(
                kind=DocumentKind.BILL,
                role=role,
                data=encode_bill(document),
                bill_id=session.bill_number,
                document=document,
                metadata={"bill_number": document.number, "amount": f"{totals.final_amount}"},
            )
            result = self.dispatcher.dispatch(request)
            logger.info("bill %s via %s: %s", document.number, result.method, "ok" if result.success else result.reason)
            return result

    def open_cash_drawer(self, role: PrinterRole = PrinterRole.COUNTER) -> PrintResult:
        # Drawer pulses are never queued; with no direct printer this is a terminal failure.
        request = PrintRequest(kind=DocumentKind.BILL, role=role, data=cash_drawer_command())
        return self.dispatcher.dispatch(request)

    def test_print(self, role: PrinterRole = PrinterRole.COUNTER) -> PrintResult:
        printer = persistence.default_printer_for_role(role)
        label = printer.name if printer is not None else f"{role.value.title()} printer"
        paper = printer.paper if printer is not None else PaperWidth.WIDE
        data = encode_self_test(self.identity.name, label, paper, self.clock())
        request = PrintRequest(
            kind=DocumentKind.TEST,
            role=role,
            data=data,
            bill_id=f"test:{role.value}",
            metadata={"printer": label},
        )
        return self.dispatcher.dispatch(request)
