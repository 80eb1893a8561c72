"""Closed role enumeration and the single role normalizer.

Every place that compares roles goes through normalize_role(), so the
capability table, the access gate and the API dependencies can never
disagree about what "lender" or "SPONSOR" means.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Deal room participant roles."""

    ISSUER = "Issuer"
    BOOKRUNNER = "Bookrunner"
    INVESTOR = "Investor"


# Lower-cased aliases accepted from tokens, query params and stored data.
_ROLE_ALIASES: dict[str, Role] = {
    "issuer": Role.ISSUER,
    "sponsor": Role.ISSUER,
    "bookrunner": Role.BOOKRUNNER,
    "investor": Role.INVESTOR,
    "lender": Role.INVESTOR,
}

INTERNAL_ROLES: frozenset[Role] = frozenset({Role.ISSUER, Role.BOOKRUNNER})
ALL_ROLES: frozenset[Role] = frozenset(Role)


def normalize_role(role: str | Role | None) -> Role | None:
    """Map a loosely-typed role string onto Role, case-insensitively.

    Returns None for absent or unrecognized roles; callers decide what a
    missing role means (the capability table treats it as no permissions).
    """
    if role is None:
        return None
    if isinstance(role, Role):
        return role
    return _ROLE_ALIASES.get(role.strip().lower())


def is_internal(role: str | Role | None) -> bool:
    """True for issuer-side and bank-side users."""
    return normalize_role(role) in INTERNAL_ROLES


def is_investor(role: str | Role | None) -> bool:
    return normalize_role(role) is Role.INVESTOR


def resolve_role_preference(
    query_role: str | None,
    stored_role: str | None,
    default: Role = Role.ISSUER,
) -> tuple[Role, bool]:
    """Pick the effective role preference.

    A valid ``role`` query parameter wins over the stored preference, which
    wins over the default. Returns the role and whether it should be
    persisted (only when the query parameter supplied it).
    """
    from_query = normalize_role(query_role)
    if from_query is not None:
        return from_query, True

    from_store = normalize_role(stored_role)
    if from_store is not None:
        return from_store, False

    return default, False
