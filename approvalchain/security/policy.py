"""Authorization of approval decisions and cancellations."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from ..config import SecurityConfig
from ..constants import ROLE_PREFIX
from ..contracts import Approval, TaskRequest


class Authorizer:
    """Answers whether an actor may decide a step or cancel a request.

    The base implementation accepts only the exact reviewer id and lets
    nobody but the creator cancel. Subclasses plug in real identity or
    role lookups.
    """

    async def is_authorized(self, decider_id: str, approval: Approval) -> bool:
        """Return ``True`` if ``decider_id`` may decide ``approval``."""
        return decider_id == approval.reviewer_id

    async def reviewer_keys(self, user_id: str) -> set[str]:
        """Reviewer ids whose steps ``user_id`` may decide."""
        return {user_id}

    async def can_cancel(self, actor_id: str, request: TaskRequest) -> bool:
        """Return ``True`` if ``actor_id`` may cancel ``request``."""
        return actor_id == request.created_by


class RoleAuthorizer(Authorizer):
    """Matches deciders by identity or by role membership.

    A reviewer id of the form ``role:<name>`` is satisfied by any user whose
    role list contains ``<name>`` (case-insensitive, exact). Any other
    reviewer id must equal the decider id. Administrators may cancel any
    request in addition to its creator.
    """

    def __init__(
        self,
        roles: Optional[Mapping[str, Iterable[str]]] = None,
        admins: Iterable[str] = (),
    ) -> None:
        self._role_names = {user: list(user_roles) for user, user_roles in (roles or {}).items()}
        self._roles = {
            user: {r.lower() for r in user_roles} for user, user_roles in (roles or {}).items()
        }
        self._admins = set(admins)

    @classmethod
    def from_config(cls, config: SecurityConfig) -> "RoleAuthorizer":
        return cls(roles=config.roles, admins=config.admins)

    def roles_of(self, user_id: str) -> set[str]:
        return set(self._roles.get(user_id, set()))

    async def is_authorized(self, decider_id: str, approval: Approval) -> bool:
        reviewer = approval.reviewer_id
        if reviewer.startswith(ROLE_PREFIX):
            role = reviewer[len(ROLE_PREFIX):].lower()
            return role in self._roles.get(decider_id, set())
        return decider_id == reviewer

    async def reviewer_keys(self, user_id: str) -> set[str]:
        # Role keys use the configured spelling of each role name.
        return {user_id} | {f"{ROLE_PREFIX}{role}" for role in self._role_names.get(user_id, [])}

    async def can_cancel(self, actor_id: str, request: TaskRequest) -> bool:
        return actor_id == request.created_by or actor_id in self._admins
