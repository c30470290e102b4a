"""User model: the identities voter rolls are resolved against."""

import enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ballot_core.models.base import Base, CreatedAtMixin, UUIDMixin


class UserRole(enum.StrEnum):
    """Roles issued by the authentication collaborator."""

    ADMIN = "admin"
    ELECTION_OFFICER = "election_officer"
    AUDITOR = "auditor"
    VOTER = "voter"


class User(Base, UUIDMixin, CreatedAtMixin):
    """A person known to the system.

    Users are managed by the account collaborator; the ballot core only reads
    them to resolve roster identifiers (user id or email) to user ids.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.VOTER)
