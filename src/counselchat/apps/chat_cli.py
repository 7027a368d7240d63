from __future__ import annotations

import asyncio

from counselchat.apps.runtime_support import ChatRuntime, build_chat_runtime
from counselchat.cli import base_parser
from counselchat.core.chat.registry import SendResult
from counselchat.core.identity.provider import IdentityAssertion, LocalIdentityProvider
from counselchat.core.runtime.errors import ChatError

HELP = """Commands:
  /new [title]            start a new session
  /list                   list sessions
  /switch <id>            open a session
  /rename <id> <title>    rename a session
  /delete <id>            delete a session and its messages
  /login <email> [name]   sign in (chats are then stored in the database)
  /logout                 sign out (chats are then stored on this device)
  /migrate                copy this device's chats into your account
  /quit                   exit
Anything else is sent to the counselor."""


def _print_messages(runtime: ChatRuntime) -> None:
    for item in runtime.registry.current_messages:
        print(f"[{item.role.value}] {item.content}")


async def _handle_command(runtime: ChatRuntime, line: str) -> bool:
    registry = runtime.registry
    command, _, rest = line.partition(" ")
    rest = rest.strip()
    auth = runtime.bridge.auth

    if command == "/quit":
        return False
    if command == "/help":
        print(HELP)
    elif command == "/new":
        session = await registry.create_session(auth, rest or None)
        print(f"created {session.id} ({session.title})")
    elif command == "/list":
        for session in await registry.list_sessions(auth):
            marker = "*" if session.id == registry.active_session_id else " "
            print(f"{marker} {session.id}  {session.title}  {session.updated_at:%Y-%m-%d %H:%M}")
    elif command == "/switch":
        await registry.select_session(auth, rest)
        _print_messages(runtime)
    elif command == "/rename":
        session_id, _, title = rest.partition(" ")
        session = await registry.rename_session(auth, session_id, title.strip())
        print(f"renamed {session.id} to {session.title}")
    elif command == "/delete":
        print("deleted" if await registry.delete_session(auth, rest) else "no such session")
    elif command == "/login":
        email, _, name = rest.partition(" ")
        provider = runtime.identity_provider
        if isinstance(provider, LocalIdentityProvider):
            provider.sign_in(IdentityAssertion(external_id=f"local:{email.lower()}", email=email, display_name=name))
        auth = await runtime.bridge.handle_assertion(provider.get_current_session())
        await runtime.on_auth_change(auth)
        print(f"signed in; storage mode: {registry.storage_mode}")
    elif command == "/logout":
        await runtime.identity_provider.sign_out()
        auth = await runtime.bridge.handle_assertion(None)
        await runtime.on_auth_change(auth)
        print(f"signed out; storage mode: {registry.storage_mode}")
    elif command == "/migrate":
        if not auth.authenticated:
            print("sign in first")
        else:
            report = await runtime.migrate(auth.identity_key)
            print(f"migrated {report.sessions_migrated} sessions, {report.messages_migrated} messages")
    else:
        print(f"unknown command {command}; try /help")
    return True


async def _send_line(runtime: ChatRuntime, line: str) -> SendResult:
    registry = runtime.registry
    auth = runtime.bridge.auth
    await registry.apply_auth(auth)
    # The selected id may belong to the store used before the last sign-in change.
    if registry.active_session_id not in {s.id for s in registry.sessions}:
        await registry.create_session(auth)
    return await registry.send_message(auth, line)


async def _repl(runtime: ChatRuntime) -> None:
    auth = await runtime.bridge.start()
    await runtime.on_auth_change(auth)
    print(f"CounselChat ({runtime.registry.storage_mode}). Type /help for commands.")
    while True:
        line = (await asyncio.to_thread(input, "> ")).strip()
        if not line:
            continue
        try:
            if line.startswith("/"):
                if not await _handle_command(runtime, line):
                    return
                continue
            result = await _send_line(runtime, line)
            print(f"[assistant] {result.assistant_message.content}")
        except ChatError as exc:
            print(f"error: {exc}")
            if runtime.bridge.notice:
                print(f"notice: {runtime.bridge.notice}")


def main() -> int:
    parser = base_parser("counselchat-chat", "Chat with the career counselor from the terminal")
    args = parser.parse_args()
    runtime = build_chat_runtime(config_path=args.config)
    try:
        asyncio.run(_repl(runtime))
    except (EOFError, KeyboardInterrupt):
        print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
