from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from counselchat.core.runtime.errors import (
    AccountDeactivatedError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from counselchat.db.models import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValidationError(f"invalid email address: {email!r}")
    return value


@dataclass(slots=True)
class UserRecord:
    id: str
    email: str
    external_id: str | None
    display_name: str
    is_active: bool


@dataclass(slots=True)
class UserLookup:
    exists: bool
    is_active: bool
    user: UserRecord | None = None


def _to_record(row: User) -> UserRecord:
    return UserRecord(
        id=str(row.id),
        email=row.email,
        external_id=row.external_id,
        display_name=row.display_name,
        is_active=bool(row.is_active),
    )


class UserDirectory:
    """Application-owned user records keyed by email and external provider id."""

    def __init__(self, db_session_factory) -> None:
        self.db_session_factory = db_session_factory

    @staticmethod
    def _find(db, *, email: str | None, external_id: str | None) -> User | None:
        if external_id:
            row = db.execute(select(User).where(User.external_id == external_id)).scalar_one_or_none()
            if row is not None:
                return row
        if email:
            return db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        return None

    def check_user_exists(self, email: str | None = None, external_id: str | None = None) -> UserLookup:
        if not email and not external_id:
            return UserLookup(exists=False, is_active=False)
        normalized = _normalize_email(email) if email else None
        try:
            with self.db_session_factory() as db:
                row = self._find(db, email=normalized, external_id=external_id)
                if row is None:
                    return UserLookup(exists=False, is_active=False)
                return UserLookup(exists=True, is_active=bool(row.is_active), user=_to_record(row))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"user lookup failed: {exc}") from exc

    def create_user(self, email: str, display_name: str = "", external_id: str | None = None) -> UserRecord:
        """Create the record on first sight, otherwise refresh it.

        Safe to call repeatedly for the same identity: a concurrent insert that
        loses the unique-constraint race falls back to updating the winner.
        """
        normalized = _normalize_email(email)
        try:
            try:
                return self._upsert(normalized, display_name, external_id)
            except IntegrityError:
                return self._upsert(normalized, display_name, external_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"user upsert failed: {exc}") from exc

    def _upsert(self, email: str, display_name: str, external_id: str | None) -> UserRecord:
        with self.db_session_factory() as db:
            row = self._find(db, email=email, external_id=external_id)
            if row is None:
                row = User(
                    email=email,
                    external_id=external_id,
                    display_name=display_name or email,
                    is_active=True,
                    created_at=_utcnow(),
                    updated_at=_utcnow(),
                )
                db.add(row)
            else:
                if not row.is_active:
                    raise AccountDeactivatedError(f"user account {row.id} is deactivated")
                if external_id:
                    row.external_id = external_id
                if display_name:
                    row.display_name = display_name
                row.updated_at = _utcnow()
            db.commit()
            db.refresh(row)
            return _to_record(row)

    def register_user(self, email: str, display_name: str, external_id: str | None = None) -> UserRecord:
        normalized = _normalize_email(email)
        if not display_name or not display_name.strip():
            raise ValidationError("display_name must be a non-empty string")
        try:
            with self.db_session_factory() as db:
                if self._find(db, email=normalized, external_id=None) is not None:
                    raise ValidationError("user already exists with this email")
                row = User(
                    email=normalized,
                    external_id=external_id,
                    display_name=display_name.strip(),
                    is_active=True,
                    created_at=_utcnow(),
                    updated_at=_utcnow(),
                )
                db.add(row)
                db.commit()
                db.refresh(row)
                return _to_record(row)
        except IntegrityError as exc:
            raise ValidationError("user already exists with this email") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"user registration failed: {exc}") from exc

    def get_user(self, user_id: str) -> UserRecord | None:
        try:
            key = int(user_id)
        except (TypeError, ValueError):
            return None
        try:
            with self.db_session_factory() as db:
                row = db.get(User, key)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"user fetch failed: {exc}") from exc

    def set_active(self, user_id: str, active: bool) -> UserRecord:
        try:
            key = int(user_id)
        except (TypeError, ValueError) as exc:
            raise NotFoundError(f"user {user_id} does not exist") from exc
        try:
            with self.db_session_factory() as db:
                row = db.get(User, key)
                if row is None:
                    raise NotFoundError(f"user {user_id} does not exist")
                row.is_active = active
                row.updated_at = _utcnow()
                db.commit()
                db.refresh(row)
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"user update failed: {exc}") from exc
