from __future__ import annotations

from dataclasses import dataclass


ROLE_ADMIN = "admin"
ROLE_SELLER = "seller"
ROLE_CUSTOMER = "customer"

VALID_ROLES = (ROLE_ADMIN, ROLE_SELLER, ROLE_CUSTOMER)


@dataclass(frozen=True)
class Actor:
    """
    Identity of whoever issued a request.

    Authentication happens upstream; the order engine only needs to know who
    acted and in which capacity, for guards and for the audit trail.
    """
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER
