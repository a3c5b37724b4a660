"""Logging setup: plain stderr output, plus a batched Supabase `logs` table.

Messages follow the ``[TAG] message`` convention. Rows sent to Supabase carry
the tag in its own column so log queries can filter on it.
"""

import atexit
import logging
import re
import sys
import threading
from typing import Optional


SERVICE_NAME = "myq-oauth-bridge"

TAG_PATTERN = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)

_traceback_formatter = logging.Formatter()


def log_row(record: logging.LogRecord, service_name: str = SERVICE_NAME) -> dict:
    """Build the `logs` table row for a record."""
    message = record.getMessage()
    match = TAG_PATTERN.match(message)
    tag = match.group(1) if match else None
    row = {
        "service": service_name,
        "level": record.levelname,
        "tag": tag,
        "message": match.group(2) if match else message,
        "module": record.name,
        "extra": {"function": record.funcName, "line": record.lineno},
    }
    if record.exc_info:
        row["extra"]["exception"] = _traceback_formatter.formatException(record.exc_info)
    return row


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output (local debugging)."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SupabaseHandler(logging.Handler):
    """Buffers log rows and inserts them into Supabase in batches.

    A batch is sent when ``batch_size`` rows are waiting, every
    ``flush_interval`` seconds from a daemon thread, and on ``flush()``/``close()``.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str = SERVICE_NAME,
        batch_size: int = 20,
        flush_interval: float = 10.0,
        table: str = "logs",
    ):
        super().__init__(level=logging.INFO)
        self.supabase = supabase_client
        self.service_name = service_name
        self.batch_size = batch_size
        self.table = table

        self._rows: list[dict] = []
        self._rows_lock = threading.Lock()
        self._stopped = threading.Event()
        self._timer = threading.Thread(target=self._run_timer, args=(flush_interval,), daemon=True)
        self._timer.start()

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            row = log_row(record, self.service_name)
        except Exception:
            self.handleError(record)
            return
        with self._rows_lock:
            self._rows.append(row)
            full = len(self._rows) >= self.batch_size
        if full:
            self.flush()

    def _run_timer(self, interval: float):
        while not self._stopped.wait(interval):
            self.flush()

    def flush(self):
        with self._rows_lock:
            rows, self._rows = self._rows, []
        if not rows:
            return
        try:
            self.supabase.table(self.table).insert(rows).execute()
        except Exception as e:
            # stderr only, logging here would recurse into this handler
            print(f"[WARNING] Failed to send {len(rows)} log rows to Supabase: {e}", file=sys.stderr)

    def close(self):
        self._stopped.set()
        self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    level: str = "INFO",
    service_name: str = SERVICE_NAME,
    supabase_client=None,
) -> logging.Logger:
    """Configure the root logger; safe to call more than once.

    Only handlers installed by an earlier call are replaced, so handlers added
    by the host (pytest's caplog, uvicorn) are left in place.

    Args:
        level: Root log level name (DEBUG, INFO, ...).
        service_name: Stamped on every Supabase log row.
        supabase_client: Supabase client; without one, logs go to stderr only.
    """
    global _supabase_handler

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        if handler is _supabase_handler or isinstance(handler.formatter, PlainFormatter):
            root_logger.removeHandler(handler)
            handler.close()
    _supabase_handler = None

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    if supabase_client:
        _supabase_handler = SupabaseHandler(supabase_client, service_name=service_name)
        root_logger.addHandler(_supabase_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    if _supabase_handler:
        logging.getLogger(__name__).info(f"[STARTUP] Supabase logging enabled for service: {service_name}")
    else:
        logging.getLogger(__name__).info("[STARTUP] Supabase logging disabled (no client)")

    return root_logger


def flush_logs():
    """Send any buffered log rows to Supabase now."""
    if _supabase_handler:
        _supabase_handler.flush()
