"""SQLite persistence for printer configuration, queued print jobs and counters."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from posreceipt import config
from posreceipt.models import (
    DocumentKind,
    JobStatus,
    PaperWidth,
    PrinterDescriptor,
    PrinterRole,
    PrintJob,
    TransportKind,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    # Fixed-width UTC text so created_at compares correctly as a string.
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


def _connect() -> sqlite3.Connection:
    db_file = Path(config.DB_PATH)
    db_file.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_file)
    conn.row_factory = sqlite3.Row
    return conn


def bootstrap_schema() -> None:
    """Create persistence schema if it does not already exist."""
    with _connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS printers (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                transport TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'counter',
                paper TEXT NOT NULL DEFAULT 'wide',
                vendor_id INTEGER,
                product_id INTEGER,
                host TEXT,
                port INTEGER,
                manufacturer TEXT NOT NULL DEFAULT '',
                is_active INTEGER NOT NULL DEFAULT 1,
                is_default INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS print_jobs (
                id TEXT PRIMARY KEY,
                bill_id TEXT NOT NULL,
                job_type TEXT NOT NULL CHECK (job_type IN ('ticket', 'bill', 'test')),
                printer_role TEXT NOT NULL DEFAULT 'counter',
                payload TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
                origin TEXT NOT NULL,
                error_message TEXT,
                created_at TEXT NOT NULL,
                processed_at TEXT
            );

            CREATE TABLE IF NOT EXISTS counters (
                name TEXT PRIMARY KEY,
                day TEXT NOT NULL,
                value INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_print_jobs_pending
                ON print_jobs(bill_id, job_type, status, created_at);
            """
        )


# -- printers ---------------------------------------------------------------


def _printer_from_row(row: sqlite3.Row) -> PrinterDescriptor:
    return PrinterDescriptor(
        printer_id=row["id"],
        name=row["name"],
        transport=TransportKind(row["transport"]),
        role=PrinterRole(row["role"]),
        paper=PaperWidth(row["paper"]),
        vendor_id=row["vendor_id"],
        product_id=row["product_id"],
        host=row["host"],
        port=row["port"],
        manufacturer=row["manufacturer"],
        is_active=bool(row["is_active"]),
        is_default=bool(row["is_default"]),
    )


def _printer_params(printer: PrinterDescriptor) -> tuple:
    return (
        printer.name,
        printer.transport.value,
        printer.role.value,
        printer.paper.value,
        printer.vendor_id,
        printer.product_id,
        printer.host,
        printer.port,
        printer.manufacturer,
        int(printer.is_active),
        int(printer.is_default),
    )


def _clear_other_defaults(conn: sqlite3.Connection, printer: PrinterDescriptor) -> None:
    if printer.is_default and printer.is_active:
        conn.execute(
            "UPDATE printers SET is_default = 0 WHERE role = ? AND id != ?",
            (printer.role.value, printer.printer_id),
        )


def list_printers(role: PrinterRole | None = None, active_only: bool = False) -> list[PrinterDescriptor]:
    query = "SELECT * FROM printers"
    clauses: list[str] = []
    params: list[object] = []
    if role is not None:
        clauses.append("role = ?")
        params.append(role.value)
    if active_only:
        clauses.append("is_active = 1")
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at, id"
    with _connect() as conn:
        return [_printer_from_row(row) for row in conn.execute(query, params)]


def get_printer(printer_id: str) -> PrinterDescriptor | None:
    with _connect() as conn:
        row = conn.execute("SELECT * FROM printers WHERE id = ?", (printer_id,)).fetchone()
    return _printer_from_row(row) if row is not None else None


def add_printer(printer: PrinterDescriptor) -> PrinterDescriptor:
    """Persist a printer; a new default displaces the previous default of its role."""
    if not printer.printer_id:
        printer.printer_id = uuid4().hex
    with _connect() as conn:
        with conn:
            _clear_other_defaults(conn, printer)
            conn.execute(
                """
                INSERT INTO printers (
                    name, transport, role, paper, vendor_id, product_id, host, port,
                    manufacturer, is_active, is_default, id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (*_printer_params(printer), printer.printer_id, _iso(_utc_now())),
            )
    return printer


def update_printer(printer: PrinterDescriptor) -> PrinterDescriptor:
    with _connect() as conn:
        with conn:
            _clear_other_defaults(conn, printer)
            conn.execute(
                """
                UPDATE printers SET
                    name = ?, transport = ?, role = ?, paper = ?, vendor_id = ?, product_id = ?,
                    host = ?, port = ?, manufacturer = ?, is_active = ?, is_default = ?
                WHERE id = ?
                """,
                (*_printer_params(printer), printer.printer_id),
            )
    return printer


def delete_printer(printer_id: str) -> None:
    with _connect() as conn:
        with conn:
            conn.execute("DELETE FROM printers WHERE id = ?", (printer_id,))


def set_default_printer(printer_id: str) -> PrinterDescriptor | None:
    printer = get_printer(printer_id)
    if printer is None:
        return None
    printer.is_default = True
    printer.is_active = True
    return update_printer(printer)


def default_printer_for_role(role: PrinterRole) -> PrinterDescriptor | None:
    """The active default for ``role``, else the first active printer of that role."""
    candidates = list_printers(role=role, active_only=True)
    for printer in candidates:
        if printer.is_default:
            return printer
    return candidates[0] if candidates else None


# -- print jobs -------------------------------------------------------------


def _job_from_row(row: sqlite3.Row) -> PrintJob:
    return PrintJob(
        job_id=row["id"],
        bill_id=row["bill_id"],
        kind=DocumentKind(row["job_type"]),
        printer_role=PrinterRole(row["printer_role"]),
        payload=row["payload"],
        status=JobStatus(row["status"]),
        origin=row["origin"],
        created_at=_parse(row["created_at"]),
        processed_at=_parse(row["processed_at"]),
        error_message=row["error_message"],
    )


def find_recent_pending_job(
    conn: sqlite3.Connection,
    bill_id: str,
    kind: DocumentKind,
    window_seconds: int,
    now: datetime,
) -> PrintJob | None:
    since = _iso(now - timedelta(seconds=window_seconds))
    row = conn.execute(
        """
        SELECT * FROM print_jobs
        WHERE bill_id = ? AND job_type = ? AND status = 'pending' AND created_at >= ?
        ORDER BY created_at DESC
        LIMIT 1
        """,
        (bill_id, kind.value, since),
    ).fetchone()
    return _job_from_row(row) if row is not None else None


def enqueue_print_job(
    bill_id: str,
    kind: DocumentKind,
    role: PrinterRole,
    payload: str,
    *,
    origin: str | None = None,
    window_seconds: int | None = None,
    now: datetime | None = None,
) -> tuple[PrintJob, bool]:
    """Queue a job unless an identical pending one was created inside the window.

    Returns ``(job, created)``; when ``created`` is False the job is the
    existing pending one.
    """
    now = now or _utc_now()
    window = config.DEDUP_WINDOW_SECONDS if window_seconds is None else window_seconds
    with _connect() as conn:
        # Take the write lock before the lookup so two terminals cannot both miss.
        conn.isolation_level = None
        conn.execute("BEGIN IMMEDIATE")
        try:
            existing = find_recent_pending_job(conn, bill_id, kind, window, now)
            if existing is not None:
                conn.execute("COMMIT")
                return existing, False
            job = PrintJob(
                job_id=uuid4().hex,
                bill_id=bill_id,
                kind=kind,
                printer_role=role,
                payload=payload,
                status=JobStatus.PENDING,
                origin=origin or config.JOB_ORIGIN,
                created_at=now,
            )
            conn.execute(
                """
                INSERT INTO print_jobs (id, bill_id, job_type, printer_role, payload, status, origin, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (job.job_id, bill_id, kind.value, role.value, payload, job.status.value, job.origin, _iso(now)),
            )
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
    return job, True


def get_print_job(job_id: str) -> PrintJob | None:
    with _connect() as conn:
        row = conn.execute("SELECT * FROM print_jobs WHERE id = ?", (job_id,)).fetchone()
    return _job_from_row(row) if row is not None else None


def list_print_jobs(status: JobStatus | None = None, bill_id: str | None = None) -> list[PrintJob]:
    query = "SELECT * FROM print_jobs"
    clauses: list[str] = []
    params: list[object] = []
    if status is not None:
        clauses.append("status = ?")
        params.append(status.value)
    if bill_id is not None:
        clauses.append("bill_id = ?")
        params.append(bill_id)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at"
    with _connect() as conn:
        return [_job_from_row(row) for row in conn.execute(query, params)]


def update_job_status(job_id: str, status: JobStatus, error_message: str | None = None) -> None:
    """Status transitions are driven by the print agent; this is its write path."""
    processed_at = _iso(_utc_now()) if status in {JobStatus.COMPLETED, JobStatus.FAILED} else None
    with _connect() as conn:
        with conn:
            conn.execute(
                "UPDATE print_jobs SET status = ?, error_message = ?, processed_at = ? WHERE id = ?",
                (status.value, error_message, processed_at, job_id),
            )


def cleanup_old_jobs(max_age_hours: int = 24, now: datetime | None = None) -> int:
    """Delete finished jobs older than ``max_age_hours``; returns the number removed."""
    cutoff = _iso((now or _utc_now()) - timedelta(hours=max_age_hours))
    with _connect() as conn:
        with conn:
            cur = conn.execute(
                "DELETE FROM print_jobs WHERE status IN ('completed', 'failed') AND created_at < ?",
                (cutoff,),
            )
    return cur.rowcount


# -- counters ---------------------------------------------------------------


def next_counter(name: str, today: date | None = None, daily_reset: bool = True) -> int:
    """Increment and return a named counter, restarting at 1 on a new day when ``daily_reset``."""
    day = (today or date.today()).isoformat()
    with _connect() as conn:
        with conn:
            row = conn.execute("SELECT day, value FROM counters WHERE name = ?", (name,)).fetchone()
            if row is None:
                value = 1
            elif daily_reset and row["day"] != day:
                value = 1
            else:
                value = row["value"] + 1
            conn.execute(
                "INSERT INTO counters (name, day, value) VALUES (?, ?, ?) "
                "ON CONFLICT(name) DO UPDATE SET day = excluded.day, value = excluded.value",
                (name, day, value),
            )
    return value


def next_kot_number(today: date | None = None) -> str:
    """Next kitchen ticket number, zero padded, restarting every day."""
    return f"{next_counter('kot', today, daily_reset=True):02d}"


def next_bill_number(today: date | None = None) -> str:
    return str(next_counter("bill", today, daily_reset=False))


def release_counter(name: str, value: int, today: date | None = None) -> bool:
    """Give back ``value`` if it is still the latest number handed out for ``name`` today."""
    day = (today or date.today()).isoformat()
    with _connect() as conn:
        with conn:
            cur = conn.execute(
                "UPDATE counters SET value = value - 1 WHERE name = ? AND day = ? AND value = ?",
                (name, day, value),
            )
    return cur.rowcount == 1


def release_kot_number(kot_number: str, today: date | None = None) -> bool:
    """Return an unprinted KOT number so the retry reuses it."""
    return release_counter("kot", int(kot_number), today)
