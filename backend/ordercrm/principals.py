# Overview: The authenticated caller, resolved once per request.

"""
A request is made by exactly one principal:

    Principal = AdminPrincipal | SupplierPrincipal | ClientPrincipal | VendorPrincipal

Handlers branch with isinstance (or the is_* helpers) instead of comparing
role strings. A User with role "vendor" is resolved to the VendorPrincipal
of its linked Vendor, so vendor rules apply however the vendor logged in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .models import SessionToken, User, Vendor
from .services.session_service import SessionContext


@dataclass(frozen=True)
class _UserPrincipal:
    user: User
    session: SessionToken

    role = ""

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def name(self) -> str:
        return self.user.username

    def to_dict(self) -> dict:
        return {"type": "user", "role": self.role, "user": self.user.to_dict()}


@dataclass(frozen=True)
class AdminPrincipal(_UserPrincipal):
    role = "admin"


@dataclass(frozen=True)
class SupplierPrincipal(_UserPrincipal):
    role = "supplier"


@dataclass(frozen=True)
class ClientPrincipal(_UserPrincipal):
    role = "client"


@dataclass(frozen=True)
class VendorPrincipal:
    vendor: Vendor
    session: SessionToken
    # Set when the vendor logged in through a vendor-role User
    user: User | None = None

    role = "vendor"

    @property
    def id(self) -> int:
        return self.vendor.id

    @property
    def name(self) -> str:
        return self.vendor.name

    def to_dict(self) -> dict:
        return {"type": "vendor", "role": self.role, "vendor": self.vendor.to_dict()}


Principal = Union[AdminPrincipal, SupplierPrincipal, ClientPrincipal, VendorPrincipal]

_USER_PRINCIPALS = {
    "admin": AdminPrincipal,
    "supplier": SupplierPrincipal,
    "client": ClientPrincipal,
}


def is_vendor(principal) -> bool:
    return isinstance(principal, VendorPrincipal)


def actor_of(principal) -> tuple[str, int | None]:
    """(actor_type, actor_id) for audit and notification rows."""
    if principal is None:
        return "system", None
    if isinstance(principal, VendorPrincipal):
        return "vendor", principal.vendor.id
    return "user", principal.user.id


def resolve_principal(context: SessionContext) -> Principal | None:
    """Map a validated session to its principal; None if it cannot be resolved."""
    session = context.session
    if context.vendor is not None:
        return VendorPrincipal(vendor=context.vendor, session=session)

    user = context.user
    if user is None:
        return None

    if session.role == "vendor":
        vendor = user.vendor_profile
        if vendor is None or not vendor.is_active:
            return None
        return VendorPrincipal(vendor=vendor, session=session, user=user)

    principal_cls = _USER_PRINCIPALS.get(session.role)
    if principal_cls is None:
        return None
    return principal_cls(user=user, session=session)
