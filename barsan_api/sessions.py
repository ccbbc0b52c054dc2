"""
Issued login sessions for guests and staff.

A token is valid while it exists, is not revoked and has not reached its
expiry. Expiry is checked when a token is presented; `purge_expired` removes
dead rows and is run from the CLI.
"""
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from .errors import InvalidToken, StorageError, TokenExpired, TokenNotFound
from .extensions import db
from .identity import GUEST, STAFF, Identity
from .models import Admin, User, UserSession

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{20,128}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def identity_for(owner) -> Identity:
    if isinstance(owner, Admin):
        return Identity(kind=STAFF, id=owner.id, email=owner.email, verified=True,
                        cafe_ids=owner.cafe_scope())
    return Identity(kind=GUEST, id=owner.id, email=owner.email, verified=bool(owner.is_verified))


class SessionManager:

    def __init__(self, ttl: timedelta = timedelta(days=7), clock=_utcnow, session=None):
        self.ttl = ttl
        self.clock = clock
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def issue(self, identity: Identity, ip_address: str | None = None) -> str:
        now = self.clock()
        token = secrets.token_urlsafe(32)
        row = UserSession(
            token=token,
            kind=identity.kind,
            user_id=identity.id if identity.kind == GUEST else None,
            admin_id=identity.id if identity.kind == STAFF else None,
            ip_address=ip_address,
            issued_at=now,
            expires_at=now + self.ttl,
            last_activity=now,
        )
        self.session.add(row)
        self._commit()
        logger.info("Issued %s session for %s", identity.kind, identity.email)
        return token

    def validate(self, token: str | None) -> Identity:
        if not token or not _TOKEN_RE.match(token):
            raise InvalidToken("Malformed session token.")

        row = self._find(token)
        if row is None:
            raise TokenNotFound("Unknown session token.")
        if row.revoked:
            raise InvalidToken("Session has been revoked.")
        now = self.clock()
        if now >= row.expires_at:
            raise TokenExpired("Session has expired.")

        owner = row.admin if row.kind == STAFF else row.user
        if owner is None or (row.kind == STAFF and not owner.is_active):
            raise InvalidToken("Session owner is no longer active.")

        row.last_activity = now
        self._commit()
        return identity_for(owner)

    def revoke(self, token: str | None) -> None:
        if not token:
            return
        row = self._find(token)
        if row is None or row.revoked:
            return
        row.revoked = True
        self._commit()

    def revoke_all(self, identity: Identity) -> int:
        owner = UserSession.admin_id if identity.kind == STAFF else UserSession.user_id
        result = self._execute(
            update(UserSession).where(owner == identity.id, UserSession.revoked.is_(False))
            .values(revoked=True)
        )
        self._commit()
        return result.rowcount

    def purge_expired(self) -> int:
        result = self._execute(
            delete(UserSession).where(or_(UserSession.expires_at <= self.clock(), UserSession.revoked.is_(True)))
        )
        self._commit()
        return result.rowcount

    def _find(self, token: str) -> UserSession | None:
        return self._execute(select(UserSession).where(UserSession.token == token)).scalar_one_or_none()

    def _execute(self, stmt):
        try:
            return self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Session storage is unavailable.") from e

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError("Session storage is unavailable.") from e
