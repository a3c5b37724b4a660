"""Tests for log setup and the batched Supabase handler."""
import logging
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import main
from logging_config import SupabaseHandler, flush_logs, log_row, setup_logging
from main import create_app


def make_record(message, level=logging.INFO):
    return logging.LogRecord("oauth.endpoints", level, __file__, 10, message, None, None)


def inserted_rows(supabase):
    return [row for call in supabase.table.return_value.insert.call_args_list for row in call.args[0]]


@pytest.fixture
def restore_logging():
    yield
    setup_logging("INFO")


def test_log_row_splits_tag():
    row = log_row(make_record("[LOGIN] User authenticated: user@x.com"))

    assert row["tag"] == "LOGIN"
    assert row["message"] == "User authenticated: user@x.com"
    assert row["service"] == "myq-oauth-bridge"
    assert row["module"] == "oauth.endpoints"


def test_log_row_without_tag():
    row = log_row(make_record("plain message"), service_name="other")

    assert row["tag"] is None
    assert row["message"] == "plain message"
    assert row["service"] == "other"


def test_handler_sends_full_batches():
    supabase = MagicMock()
    handler = SupabaseHandler(supabase, batch_size=2, flush_interval=3600)

    handler.emit(make_record("[AUTH] one"))
    assert supabase.table.return_value.insert.call_count == 0
    handler.emit(make_record("[AUTH] two"))

    supabase.table.assert_called_with("logs")
    assert [row["message"] for row in inserted_rows(supabase)] == ["one", "two"]
    handler.close()


def test_handler_survives_supabase_failure(capsys):
    supabase = MagicMock()
    supabase.table.return_value.insert.return_value.execute.side_effect = ConnectionError("down")
    handler = SupabaseHandler(supabase, batch_size=10, flush_interval=3600)

    handler.emit(make_record("[AUTH] lost"))
    handler.flush()

    assert "Failed to send 1 log rows" in capsys.readouterr().err
    handler.close()


def test_setup_logging_routes_to_supabase(restore_logging):
    supabase = MagicMock()
    setup_logging("INFO", supabase_client=supabase)

    logging.getLogger("devices").info("[DEVICES] GET devices")
    flush_logs()

    assert any(row["tag"] == "DEVICES" for row in inserted_rows(supabase))


def test_setup_logging_keeps_foreign_handlers(caplog, restore_logging):
    setup_logging("INFO")
    setup_logging("INFO")

    logging.getLogger("oauth.server").info("[AUTHORIZE] still captured")

    assert "still captured" in caplog.text
    plain = [h for h in logging.getLogger().handlers if type(h.formatter).__name__ == "PlainFormatter"]
    assert len(plain) == 1


def test_shutdown_flushes_logs(config, store, myq, session_store, monkeypatch):
    flushed = []
    monkeypatch.setattr(main, "flush_logs", lambda: flushed.append(True))
    app = create_app(config, store=store, myq_factory=myq, session_store=session_store)

    with TestClient(app):
        assert flushed == []

    assert flushed == [True]
