"""SQLAlchemy ORM models for notekeep.

All models are exported from this module for convenient imports:
    from notekeep.models import User, Session, Connection, ...

Models are organized by concern:
- user.py: User
- password.py: Password (0..1 per user)
- session.py: Session
- connection.py: Connection (identity provider links)
- role.py: Role, Permission, UserRole, RolePermission
- verification.py: Verification (one-time codes)
- note.py: Note
"""

from notekeep.models.base import Base, TimestampMixin
from notekeep.models.connection import Connection
from notekeep.models.note import Note
from notekeep.models.password import Password
from notekeep.models.role import Permission, Role, RolePermission, UserRole
from notekeep.models.session import Session
from notekeep.models.user import User
from notekeep.models.verification import Verification

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Identity
    "User",
    "Password",
    "Session",
    "Connection",
    # Authorization
    "Role",
    "Permission",
    "UserRole",
    "RolePermission",
    # One-time codes
    "Verification",
    # Content
    "Note",
]
