from datetime import datetime
from decimal import Decimal

import pytest

from conftest import RecordingTransport
from posreceipt import pipeline
from posreceipt.dispatcher import DirectStrategy, PrintDispatcher, QueueStrategy
from posreceipt.encoder import encode_document_text
from posreceipt.errors import EmptyDocument, PrintInProgress, TransferFault
from posreceipt.models import BusinessIdentity, DeltaLine, DocumentKind, PrinterDescriptor, PrinterRole, TransportKind
from posreceipt.order import OrderSession
from posreceipt.pipeline import PrintPipeline, delta_fingerprint

IDENTITY = BusinessIdentity(name="Annapurna", address="12 MG Road, Pune", phone="9800000000")
PRINTER = PrinterDescriptor("p1", "Kitchen", TransportKind.USB, role=PrinterRole.KITCHEN, vendor_id=0x0416, product_id=0x5011)


class Recorder:
    """Strategy that records requests and answers with a fixed outcome."""

    def __init__(self, transport):
        self.direct = DirectStrategy(printer_lookup=lambda role: PRINTER, transport_factory=lambda p, t: transport)
        self.requests = []

    def attempt(self, request):
        self.requests.append(request)
        return self.direct.attempt(request)


def _pipeline(transport=None):
    recorder = Recorder(transport or RecordingTransport())
    return PrintPipeline(PrintDispatcher([recorder]), IDENTITY, clock=lambda: datetime(2024, 3, 9, 19, 45)), recorder


def _session():
    session = OrderSession(table_number="4")
    session.add_item("dal", "Dal Makhani", Decimal("150"), 2, tax_rate=Decimal("5"))
    return session


def test_kitchen_ticket_commits_delta_on_success(db):
    printer, recorder = _pipeline()
    session = _session()

    result = printer.print_kitchen_ticket(session)

    assert result.success
    assert list(session.pending_delta()) == []
    [request] = recorder.requests
    assert request.kind is DocumentKind.TICKET
    assert request.metadata["kot_number"] == "01"
    assert b"Dal Makhani" in request.data


def test_failed_ticket_keeps_delta_pending(db):
    printer, _ = _pipeline(RecordingTransport(TransferFault("Pipe error")))
    session = _session()
    before = list(session.pending_delta())

    result = printer.print_kitchen_ticket(session)

    assert not result.success
    assert result.reason == "transfer_fault"
    assert list(session.pending_delta()) == before


def test_queued_ticket_counts_as_sent(db):
    printer = PrintPipeline(PrintDispatcher([QueueStrategy()]), IDENTITY)
    session = _session()

    result = printer.print_kitchen_ticket(session)

    assert result.method == "queue"
    assert session.lines[0].sent_to_kitchen


def test_empty_delta_is_a_no_op(db):
    printer, recorder = _pipeline()
    session = _session()
    printer.print_kitchen_ticket(session)

    result = printer.print_kitchen_ticket(session)

    assert result.success and result.method == "none"
    assert len(recorder.requests) == 1


def test_new_delta_gets_a_new_dedup_key(db):
    printer, recorder = _pipeline()
    session = _session()
    printer.print_kitchen_ticket(session)
    session.increment(session.lines[0].line_id)

    printer.print_kitchen_ticket(session)

    first, second = recorder.requests
    assert first.bill_id != second.bill_id
    assert second.bill_id.startswith(session.order_id + ":")


def test_delta_fingerprint_is_stable():
    delta = [DeltaLine("l1", "Tea", "single", 2, Decimal("20"), Decimal("5"), "", 2)]

    assert delta_fingerprint(delta) == delta_fingerprint(list(delta))
    assert delta_fingerprint(delta) != delta_fingerprint([DeltaLine("l1", "Tea", "single", 1, Decimal("20"), Decimal("5"), "", 3)])


def test_bill_allocates_number_once(db):
    printer, recorder = _pipeline()
    session = _session()

    printer.print_bill(session)
    printer.print_bill(session, reprint=True)

    assert session.bill_number == "1"
    assert [r.bill_id for r in recorder.requests] == ["1", "1"]
    assert recorder.requests[0].metadata["amount"] == "315"


def test_empty_bill_is_rejected_before_dispatch(db):
    printer, recorder = _pipeline()
    session = OrderSession(table_number="4")

    with pytest.raises(EmptyDocument):
        printer.print_bill(session)

    assert session.bill_number is None
    assert recorder.requests == []


@pytest.mark.parametrize(
    "error",
    [
        OSError("cannot open resource"),
        ValueError("image too large"),
        UnicodeEncodeError("latin-1", "\u20b9", 0, 1, "ordinal not in range(256)"),
    ],
)
def test_bill_falls_back_to_text_when_raster_fails(db, monkeypatch, error):
    def no_fonts(document):
        raise error

    monkeypatch.setattr(pipeline, "render_bill_raster", no_fonts)
    printer, recorder = _pipeline()

    printer.print_bill(_session())

    [request] = recorder.requests
    assert request.data == encode_document_text(request.document)


def test_concurrent_print_for_same_order_is_rejected(db):
    session = _session()
    nested = []

    class Reentrant:
        def attempt(self, request):
            with pytest.raises(PrintInProgress) as excinfo:
                printer.print_bill(session)
            nested.append(excinfo.value.reason)
            return None

    printer = PrintPipeline(PrintDispatcher([Reentrant()]), IDENTITY)
    result = printer.print_kitchen_ticket(session)

    assert nested == ["print_in_progress"]
    assert result.reason == "no_print_method"
    assert list(session.pending_delta())


def test_cash_drawer_without_printer_is_terminal(db):
    printer = PrintPipeline(identity=IDENTITY)

    result = printer.open_cash_drawer()

    assert not result.success
    assert result.reason == "no_print_method"


def test_self_test_print(db):
    printer, recorder = _pipeline()

    assert printer.test_print(PrinterRole.KITCHEN).success
    [request] = recorder.requests
    assert request.kind is DocumentKind.TEST
    assert request.bill_id == "test:kitchen"
    assert b"ANNAPURNA" in request.data


def test_failed_ticket_gives_its_kot_number_back(db):
    transport = RecordingTransport(TransferFault("Pipe error"))
    printer, recorder = _pipeline(transport)
    session = _session()

    assert not printer.print_kitchen_ticket(session).success
    transport.error = None
    assert printer.print_kitchen_ticket(session).success

    assert [r.metadata["kot_number"] for r in recorder.requests] == ["01", "01"]
    assert printer.print_kitchen_ticket(_session()).success
    assert recorder.requests[-1].metadata["kot_number"] == "02"
