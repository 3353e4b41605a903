"""
Company ownership checks for mutating operations.

WHY: Every write on a company-scoped aggregate (purchase, provisional sale)
goes through this check once per operation. System users may act on any
company; everyone else only on their own.

USAGE:
    actor = ActorContext(user_id=7, company_id=2)
    require_company_access(actor, purchase.company_id, action="approve purchase")
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import AuthorizationError


@dataclass(frozen=True)
class ActorContext:
    """The user on whose behalf a unit of work runs."""
    user_id: int | None = None
    company_id: int | None = None
    is_system_user: bool = False

    def can_access_company(self, company_id: int) -> bool:
        if self.is_system_user:
            return True
        if self.company_id is None:
            return False
        return self.company_id == company_id


SYSTEM_ACTOR = ActorContext(user_id=None, company_id=None, is_system_user=True)


def require_company_access(actor: ActorContext, company_id: int, *, action: str) -> None:
    """
    Raise AuthorizationError unless `actor` may perform `action` on `company_id`.
    """
    if not actor.can_access_company(company_id):
        raise AuthorizationError(
            f"Not allowed to {action} for this company",
            details={"company_id": company_id, "actor_company_id": actor.company_id},
        )
