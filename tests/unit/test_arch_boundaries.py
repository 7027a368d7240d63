from __future__ import annotations

from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
PACKAGE = ROOT / "src/counselchat"


def test_core_does_not_import_apps():
    disallowed: list[str] = []
    for py_file in (PACKAGE / "core").rglob("*.py"):
        if "counselchat.apps" in py_file.read_text(encoding="utf-8"):
            disallowed.append(str(py_file))
    assert disallowed == [], f"Core module imported an app entrypoint: {disallowed}"


def test_registry_routes_through_backends_only():
    content = (PACKAGE / "core/chat/registry.py").read_text(encoding="utf-8")
    assert ".local.add_message" not in content
    assert ".remote.add_message" not in content
    assert "sqlalchemy" not in content


def test_chat_layer_does_not_use_http_clients_directly():
    disallowed: list[str] = []
    for py_file in (PACKAGE / "core/chat").rglob("*.py"):
        content = py_file.read_text(encoding="utf-8")
        if "httpx" in content or "groq_adapter" in content:
            disallowed.append(str(py_file))
    assert disallowed == [], f"Chat layer made direct provider calls: {disallowed}"
