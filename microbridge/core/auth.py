from dataclasses import dataclass
from enum import Enum

REVIEWS_READ = "reviews:read"
REVIEWS_WRITE = "reviews:write"
REVIEWS_SWEEP = "reviews:sweep"
JOBS_WRITE = "jobs:write"

PARTY_SCOPES = frozenset({REVIEWS_READ, REVIEWS_WRITE, JOBS_WRITE})

ROLE_SCOPES: dict[str, frozenset[str]] = {
    "user": frozenset({REVIEWS_READ}),
    "student": PARTY_SCOPES,
    "employer": PARTY_SCOPES,
    "admin": PARTY_SCOPES | {REVIEWS_SWEEP},
}

SWEEPER_SCOPES = frozenset({REVIEWS_SWEEP})


class PrincipalType(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]
    role: str | None = None
    actor_id: str | None = None

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


def scopes_for_role(role: str) -> set[str]:
    """Unknown roles fall back to read-only access."""
    return set(ROLE_SCOPES.get(role, ROLE_SCOPES["user"]))
