from __future__ import annotations

import pytest

from counselchat.core.identity.users import UserDirectory
from counselchat.core.runtime.errors import AccountDeactivatedError, NotFoundError, ValidationError
from counselchat.db.session import init_db


@pytest.fixture
def directory(tmp_path) -> UserDirectory:
    db_session_factory, _ = init_db(f"sqlite:///{tmp_path / 'users.db'}")
    return UserDirectory(db_session_factory)


def test_create_user_is_idempotent(directory):
    first = directory.create_user("Ada@Example.com", "Ada", "ext-ada")
    second = directory.create_user("ada@example.com", "", "ext-ada")

    assert first.id == second.id
    assert second.email == "ada@example.com"
    assert second.display_name == "Ada"
    assert second.is_active is True


def test_create_user_links_external_id_to_existing_email(directory):
    registered = directory.register_user("grace@example.com", "Grace")
    linked = directory.create_user("grace@example.com", "Grace H", "ext-grace")

    assert linked.id == registered.id
    assert linked.external_id == "ext-grace"
    assert directory.check_user_exists(external_id="ext-grace").user.id == registered.id


def test_check_user_exists_reports_activity(directory):
    assert directory.check_user_exists(email="nobody@example.com").exists is False
    assert directory.check_user_exists().exists is False

    user = directory.create_user("ada@example.com", "Ada")
    directory.set_active(user.id, False)

    lookup = directory.check_user_exists(email="ada@example.com")
    assert lookup.exists is True
    assert lookup.is_active is False


def test_deactivated_user_cannot_be_refreshed(directory):
    user = directory.create_user("ada@example.com", "Ada", "ext-ada")
    directory.set_active(user.id, False)

    with pytest.raises(AccountDeactivatedError):
        directory.create_user("ada@example.com", "Ada", "ext-ada")


def test_register_user_rejects_duplicates_and_bad_input(directory):
    directory.register_user("ada@example.com", "Ada")
    with pytest.raises(ValidationError, match="already exists"):
        directory.register_user("ADA@example.com", "Ada again")
    with pytest.raises(ValidationError):
        directory.register_user("not-an-email", "Nobody")
    with pytest.raises(ValidationError):
        directory.register_user("new@example.com", "  ")


def test_get_user_and_set_active_unknown(directory):
    assert directory.get_user("12345") is None
    assert directory.get_user("abc") is None
    with pytest.raises(NotFoundError):
        directory.set_active("12345", True)
