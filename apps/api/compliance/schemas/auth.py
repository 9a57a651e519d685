"""Actor identity forwarded by the authentication gateway."""

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from compliance.db.enums import ADMIN_ROLES, Role


class Actor(BaseModel):
    """
    The user performing an action.

    Authentication happens upstream; the API only consumes the resolved
    identity (id, roles, district scope, contact identifiers).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    roles: frozenset[Role] = frozenset()
    district: str | None = None
    email: str | None = None
    cnic: str | None = None

    def has_any(self, roles: Iterable[Role]) -> bool:
        return bool(self.roles & frozenset(roles))

    @property
    def is_admin(self) -> bool:
        return self.has_any(ADMIN_ROLES)

    @property
    def is_hearing_only(self) -> bool:
        """Hearing officer without registrar/admin rights (district-scoped)."""
        return (
            Role.HEARING_OFFICER in self.roles
            and not self.is_admin
            and Role.REGISTRAR not in self.roles
        )

    @property
    def is_applicant_only(self) -> bool:
        return self.roles == frozenset({Role.APPLICANT})


SYSTEM_ACTOR = Actor(id="system", roles=frozenset({Role.SUPER_ADMIN}))
