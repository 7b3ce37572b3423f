"""Runtime configuration defaults for persistence, printing and dispatch."""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DB_PATH = os.environ.get("POS_DB_PATH", "data/pos.db")
DEBUG_LOG_PATH = os.environ.get("RECEIPT_DEBUG_LOG", "/tmp/pos-receipt-debug.log")

# Raw thermal-printer listeners (JetDirect / AppSocket).
NETWORK_PRINTER_PORT = _env_int("POS_NETWORK_PORT", 9100)
TRANSFER_TIMEOUT_MS = _env_int("POS_TRANSFER_TIMEOUT_MS", 5000)
PROBE_TIMEOUT_MS = 1000
# Console printer health check period.
PRINTER_STATUS_INTERVAL_SECONDS = _env_int("POS_PRINTER_STATUS_INTERVAL_SECONDS", 30)

# A pending job for the same bill and kind inside this window is not queued again.
DEDUP_WINDOW_SECONDS = _env_int("POS_DEDUP_WINDOW_SECONDS", 30)
JOB_ORIGIN = os.environ.get("POS_JOB_ORIGIN", "pos-terminal")

PRINTER_FONT_PATH = os.environ.get("POS_PRINTER_FONT_PATH", "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf")
PRINTER_BOLD_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf"
PRINTER_FONT_SIZE = 20
PRINTER_TITLE_FONT_SIZE = 24

# Thermal dark threshold: grey levels below this print as a black dot.
RASTER_THRESHOLD = 160
# Printers reject single raster blocks taller than this.
RASTER_MAX_BLOCK_ROWS = 2048

BUSINESS_NAME = os.environ.get("POS_BUSINESS_NAME", "Restaurant")
BUSINESS_ADDRESS = os.environ.get("POS_BUSINESS_ADDRESS", "")
BUSINESS_PHONE = os.environ.get("POS_BUSINESS_PHONE", "")
BUSINESS_GSTIN = os.environ.get("POS_BUSINESS_GSTIN", "")
BUSINESS_FSSAI = os.environ.get("POS_BUSINESS_FSSAI", "")
CURRENCY_SYMBOL = "Rs."
