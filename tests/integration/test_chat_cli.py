from __future__ import annotations

import pytest

from counselchat.apps.chat_cli import _handle_command, _send_line
from counselchat.apps.runtime_support import build_chat_runtime
from counselchat.core.chat.storage import MemoryStorage
from counselchat.core.config.schema import AppConfig


@pytest.fixture
def runtime(tmp_path):
    cfg = AppConfig.model_validate(
        {
            "database": {"url": f"sqlite:///{tmp_path / 'cli.db'}"},
            "providers": {"groq": {"enabled": False}},
        }
    )
    return build_chat_runtime(cfg=cfg, storage=MemoryStorage())


@pytest.mark.asyncio
async def test_cli_session_commands(runtime, capsys):
    await runtime.on_auth_change(await runtime.bridge.start())

    assert await _handle_command(runtime, "/new Career change") is True
    session_id = runtime.registry.active_session_id
    await _handle_command(runtime, f"/rename {session_id} Switching fields")
    await _handle_command(runtime, "/list")

    out = capsys.readouterr().out
    assert f"created {session_id} (Career change)" in out
    assert "renamed" in out
    assert f"* {session_id}  Switching fields" in out

    await _handle_command(runtime, f"/delete {session_id}")
    assert "deleted" in capsys.readouterr().out
    assert await _handle_command(runtime, "/quit") is False


@pytest.mark.asyncio
async def test_cli_login_migrate_logout(runtime, capsys):
    await runtime.on_auth_change(await runtime.bridge.start())
    await _handle_command(runtime, "/new Plan A")
    await runtime.registry.send_message(runtime.bridge.auth, "hi")

    await _handle_command(runtime, "/login ada@example.com Ada")
    assert "storage mode: database" in capsys.readouterr().out

    await _handle_command(runtime, "/migrate")
    assert "migrated 1 sessions, 2 messages" in capsys.readouterr().out
    assert [s.title for s in runtime.registry.current_sessions] == ["Plan A"]

    await _handle_command(runtime, "/logout")
    assert "storage mode: localStorage" in capsys.readouterr().out
    assert runtime.identity_provider.redirected_to == "/"


@pytest.mark.asyncio
async def test_plain_message_after_login_starts_a_remote_session(runtime, capsys):
    await runtime.on_auth_change(await runtime.bridge.start())
    local_result = await _send_line(runtime, "hi")
    local_id = local_result.user_message.session_id

    await _handle_command(runtime, "/login ada@example.com Ada")
    capsys.readouterr()
    result = await _send_line(runtime, "hello from my account")

    assert result.user_message.session_id != local_id
    assert runtime.registry.active_session_id == result.user_message.session_id
    assert [s.id for s in runtime.registry.current_sessions] == [result.user_message.session_id]
    remote = await runtime.remote_store.get_messages(result.user_message.session_id)
    assert [m.content for m in remote][0] == "hello from my account"
