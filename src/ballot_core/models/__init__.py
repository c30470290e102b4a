"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from ballot_core.models.audit_event import AuditEvent
from ballot_core.models.election import Candidate, Contest, Election, ElectionStatus
from ballot_core.models.user import User, UserRole
from ballot_core.models.vote import VoteReceipt, VoteSelection
from ballot_core.models.voter_roll import VoterRollEntry

__all__ = [
    "AuditEvent",
    "Candidate",
    "Contest",
    "Election",
    "ElectionStatus",
    "User",
    "UserRole",
    "VoteReceipt",
    "VoteSelection",
    "VoterRollEntry",
]
