from __future__ import annotations

from dataclasses import dataclass, field

from counselchat.core.chat.local_store import LocalChatStore
from counselchat.core.chat.remote_store import RemoteChatStore
from counselchat.core.runtime.errors import ChatError, ValidationError, compact_error_summary
from counselchat.core.telemetry.logging import get_logger


@dataclass(slots=True)
class MigrationReport:
    owner_key: str
    sessions_migrated: int = 0
    messages_migrated: int = 0
    session_id_map: dict[str, str] = field(default_factory=dict)
    local_cleared: bool = False


async def migrate_local_to_remote(
    local: LocalChatStore,
    remote: RemoteChatStore,
    owner_key: str,
) -> MigrationReport:
    """Copy every local session and message into the remote store under ``owner_key``.

    Local data is cleared only after every write succeeded. The first failed
    write aborts the run and re-raises; remote rows already written stay in
    place and local storage is left untouched.
    """
    if not owner_key:
        raise ValidationError("owner_key is required to migrate local chats")

    logger = get_logger("counselchat.migration")
    report = MigrationReport(owner_key=owner_key)
    sessions = local.list_sessions()
    logger.info("migration_started", owner_key=owner_key, sessions=len(sessions))

    try:
        for session in sessions:
            remote_session = await remote.create_session(session.title, owner_key)
            report.session_id_map[session.id] = remote_session.id
            report.sessions_migrated += 1
            for message in local.list_messages(session.id):
                await remote.add_message(remote_session.id, message.role, message.content)
                report.messages_migrated += 1
    except ChatError as exc:
        logger.error(
            "migration_aborted",
            owner_key=owner_key,
            sessions_migrated=report.sessions_migrated,
            messages_migrated=report.messages_migrated,
            error=compact_error_summary(exc),
        )
        raise

    report.local_cleared = local.clear_all()
    logger.info(
        "migration_completed",
        owner_key=owner_key,
        sessions_migrated=report.sessions_migrated,
        messages_migrated=report.messages_migrated,
        local_cleared=report.local_cleared,
    )
    return report
