"""Role and permission checks.

Permission strings have the form ``action:entity[:access]`` where access is
``own``, ``any`` or a comma-separated list of both, e.g. ``delete:note:own``
or ``read:user:own,any``. Omitting the access part accepts either scope.

A user holds a permission only through a role. The check is a positive
existence query: granted if and only if a matching path
user -> role -> permission exists.
"""

import logging
import uuid
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.core.errors import ForbiddenError
from notekeep.core.sessions import AuthContext, require_user_id
from notekeep.models.role import ACCESS_ANY, ACCESS_OWN
from notekeep.repositories.role_repository import RoleRepository

logger = logging.getLogger(__name__)

_ACCESS_SCOPES = frozenset({ACCESS_OWN, ACCESS_ANY})


class PermissionSpec(NamedTuple):
    """A parsed permission requirement."""

    action: str
    entity: str
    access: tuple[str, ...] | None = None

    def __str__(self) -> str:
        """Return this requirement as a :-delimited string."""
        parts = [self.action, self.entity]
        if self.access:
            parts.append(",".join(self.access))
        return ":".join(parts)

    def as_details(self) -> dict:
        return {
            "action": self.action,
            "entity": self.entity,
            "access": list(self.access) if self.access else None,
        }


def parse_permission_string(permission: str) -> PermissionSpec:
    """Parse ``action:entity[:access]`` into a PermissionSpec.

    Raises:
        ValueError: If the string is malformed or names an unknown scope.
    """
    parts = permission.split(":")
    if len(parts) not in (2, 3) or not all(parts[:2]):
        msg = f"Invalid permission string: {permission!r}"
        raise ValueError(msg)
    action, entity = parts[0], parts[1]
    if len(parts) == 2 or not parts[2]:
        return PermissionSpec(action, entity)

    access = tuple(scope.strip() for scope in parts[2].split(","))
    unknown = set(access) - _ACCESS_SCOPES
    if unknown:
        msg = f"Unknown access scope(s) {sorted(unknown)} in {permission!r}"
        raise ValueError(msg)
    return PermissionSpec(action, entity, access)


async def user_has_permission(
    db: AsyncSession, user_id: uuid.UUID, spec: PermissionSpec | str
) -> bool:
    """Whether ``user_id`` holds ``spec`` through any of their roles."""
    if isinstance(spec, str):
        spec = parse_permission_string(spec)
    return await RoleRepository.user_has_permission(
        db,
        user_id,
        action=spec.action,
        entity=spec.entity,
        access=spec.access,
    )


async def require_user_with_permission(
    db: AsyncSession, context: AuthContext, permission: PermissionSpec | str
) -> uuid.UUID:
    """Return the current user id if they hold ``permission``.

    Raises:
        UnauthenticatedError: No valid session.
        ForbiddenError: Signed in but the permission is not granted.
    """
    user_id = require_user_id(context)
    spec = (
        parse_permission_string(permission)
        if isinstance(permission, str)
        else permission
    )
    if not await user_has_permission(db, user_id, spec):
        logger.info(
            "Permission denied",
            extra={"user_id": str(user_id), "permission": str(spec)},
        )
        raise ForbiddenError(
            message=f"Unauthorized: required permissions: {spec}",
            details=[{"required_permission": spec.as_details()}],
        )
    return user_id


async def require_user_with_role(
    db: AsyncSession, context: AuthContext, name: str
) -> uuid.UUID:
    """Return the current user id if they have role ``name``.

    Raises:
        UnauthenticatedError: No valid session.
        ForbiddenError: Signed in without the role.
    """
    user_id = require_user_id(context)
    if not await RoleRepository.user_has_role(db, user_id, name):
        logger.info(
            "Role check failed",
            extra={"user_id": str(user_id), "role": name},
        )
        raise ForbiddenError(
            message=f"Unauthorized: required role: {name}",
            details=[{"required_role": name}],
        )
    return user_id
