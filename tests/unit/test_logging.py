from __future__ import annotations

from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.storage import MemoryStorage
from counselchat.core.telemetry.logging import configure_logging, get_logger


def test_logger_emits_structured_json(capsys):
    configure_logging("INFO", json_logs=True)
    logger = get_logger("test.logger")

    logger.info("hello", session_id="s1", backend="local")
    out = capsys.readouterr().out
    assert '"event": "hello"' in out
    assert '"session_id": "s1"' in out
    assert '"level": "info"' in out


def test_absorbed_local_write_failure_is_logged(capsys):
    configure_logging("INFO", json_logs=True)
    store = LocalChatStore(MemoryStorage(quota_bytes=10))

    assert store.create_session("Plan A") is None
    out = capsys.readouterr().out
    assert '"event": "local_store_write_failed"' in out
    assert "StorageQuotaError" in out
