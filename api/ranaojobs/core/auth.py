from dataclasses import dataclass, field

GUEST_ROLE = "guest"
ADMIN_ROLE = "admin"

JOBSEEKER_SCOPES = {"profile:read", "profile:write", "review:write", "application:write", "notification:read"}
EMPLOYER_SCOPES = {"profile:read", "profile:write", "job:write", "verification:submit", "notification:read"}

ROLE_SCOPES: dict[str, set[str]] = {
    GUEST_ROLE: {"profile:write"},
    "jobseeker": JOBSEEKER_SCOPES,
    "employer": EMPLOYER_SCOPES,
    # Pending upgrade keeps employer rights until an admin decides.
    "multi-role": EMPLOYER_SCOPES,
    "multi": JOBSEEKER_SCOPES | EMPLOYER_SCOPES,
    ADMIN_ROLE: {
        "profile:read",
        "profile:write",
        "notification:read",
        "moderation:read",
        "moderation:write",
        "admin:write",
    },
}


@dataclass(slots=True)
class Principal:
    subject: str
    role: str
    scopes: set[str] = field(default_factory=set)
    active_role: str | None = None
    actor_id: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def is_registered(self) -> bool:
        return self.role != GUEST_ROLE

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


def scopes_for_role(role: str | None) -> set[str]:
    if not role:
        return set(ROLE_SCOPES[GUEST_ROLE])
    return set(ROLE_SCOPES.get(role, ROLE_SCOPES[GUEST_ROLE]))
