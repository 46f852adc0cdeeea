"""Read-only directory resolution for organizations and users.

Directory rows are reference data managed elsewhere. Answers are memoised for
the lifetime of one ``DirectoryLookup`` instance; the integrity scanner builds
a fresh instance per report, so a stale answer lives at most one request.
A check-in flagged orphaned because a user was being (re)provisioned at scan
time disappears on the next scan, which is expected.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from checkin_health.core.exceptions import InternalError
from checkin_health.models import db
from checkin_health.models.directory import Organization, User

logger = logging.getLogger(__name__)

_MISSING = object()


class DirectoryLookup:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self._organizations: dict[str, Organization | None] = {}
        self._users: dict[str, User | None] = {}

    def _organization(self, organization_id: str) -> Organization | None:
        cached = self._organizations.get(organization_id, _MISSING)
        if cached is not _MISSING:
            return cached
        try:
            org = self.session.get(Organization, organization_id)
        except SQLAlchemyError as exc:
            logger.exception("Directory lookup failed organization_id=%s", organization_id)
            raise InternalError("organization lookup", str(exc)) from exc
        self._organizations[organization_id] = org
        return org

    def _user(self, user_id: str) -> User | None:
        cached = self._users.get(user_id, _MISSING)
        if cached is not _MISSING:
            return cached
        try:
            user = self.session.get(User, user_id)
        except SQLAlchemyError as exc:
            logger.exception("Directory lookup failed user_id=%s", user_id)
            raise InternalError("user lookup", str(exc)) from exc
        self._users[user_id] = user
        return user

    def preload(self, organization_ids: Iterable[str], user_ids: Iterable[str]) -> None:
        """Resolve many ids in two queries instead of one query per record."""
        org_ids = {i for i in organization_ids if i and i not in self._organizations}
        usr_ids = {i for i in user_ids if i and i not in self._users}
        try:
            if org_ids:
                found = self.session.execute(
                    select(Organization).where(Organization.id.in_(org_ids))
                ).scalars().all()
                by_id = {o.id: o for o in found}
                for oid in org_ids:
                    self._organizations[oid] = by_id.get(oid)
            if usr_ids:
                found = self.session.execute(
                    select(User).where(User.id.in_(usr_ids))
                ).scalars().all()
                by_id = {u.id: u for u in found}
                for uid in usr_ids:
                    self._users[uid] = by_id.get(uid)
        except SQLAlchemyError as exc:
            logger.exception("Directory preload failed orgs=%d users=%d", len(org_ids), len(usr_ids))
            raise InternalError("directory preload", str(exc)) from exc

    def organization_exists(self, organization_id: str) -> bool:
        if not organization_id:
            return False
        return self._organization(organization_id) is not None

    def user_exists(self, user_id: str, organization_id: str) -> bool:
        """A user resolves only inside the organization that owns it."""
        if not user_id:
            return False
        user = self._user(user_id)
        return user is not None and user.organization_id == organization_id

    def describe_organization(self, organization_id: str) -> dict | None:
        org = self._organization(organization_id) if organization_id else None
        if org is None:
            return None
        return {"id": org.id, "name": org.name, "slug": org.slug}

    def describe_user(self, user_id: str) -> dict | None:
        user = self._user(user_id) if user_id else None
        if user is None:
            return None
        return {"id": user.id, "name": user.name, "email": user.email}
