"""Role normalization and capability table tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.dealroom.access.capabilities import (
    NO_CAPABILITIES,
    ROLE_CAPABILITIES,
    Capabilities,
    capabilities_for,
)
from src.dealroom.access.roles import (
    Role,
    is_internal,
    is_investor,
    normalize_role,
    resolve_role_preference,
)


# ── normalize_role ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Issuer", Role.ISSUER),
        ("ISSUER", Role.ISSUER),
        ("sponsor", Role.ISSUER),
        (" bookrunner ", Role.BOOKRUNNER),
        ("Investor", Role.INVESTOR),
        ("lender", Role.INVESTOR),
        (Role.BOOKRUNNER, Role.BOOKRUNNER),
        ("admin", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_role(raw, expected):
    assert normalize_role(raw) is expected


def test_is_internal_and_is_investor():
    assert is_internal("issuer") and is_internal("Bookrunner")
    assert not is_internal("lender")
    assert not is_internal(None)
    assert is_investor("LENDER")
    assert not is_investor("sponsor")


# ── capabilities_for ─────────────────────────────────────────────────────────


def test_every_role_has_a_table_entry():
    for role in Role:
        assert role in ROLE_CAPABILITIES
        assert capabilities_for(role) is ROLE_CAPABILITIES[role]


@pytest.mark.parametrize("role", [None, "", "guest", "superuser", "investor-ish"])
def test_unknown_role_gets_no_capabilities(role):
    caps = capabilities_for(role)
    assert caps == NO_CAPABILITIES
    assert not any(caps.model_dump().values())


def test_lookup_is_case_insensitive():
    assert capabilities_for("bookrunner") == capabilities_for("BOOKRUNNER")
    assert capabilities_for("lender") == capabilities_for(Role.INVESTOR)


def test_only_issuer_creates_deals():
    assert capabilities_for("Issuer").create_deal
    assert not capabilities_for("Bookrunner").create_deal
    assert not capabilities_for("Investor").create_deal


def test_bookrunner_publishes_and_invites():
    caps = capabilities_for("Bookrunner")
    assert caps.publish_deal and caps.invite_lenders and caps.send_reminders
    issuer = capabilities_for("Issuer")
    assert not issuer.publish_deal and not issuer.invite_lenders


def test_investor_capabilities():
    caps = capabilities_for("Investor")
    assert caps.sign_nda and caps.submit_commitment and caps.upload_markup
    assert not caps.view_investor_book
    assert not caps.see_all_qa
    assert not caps.send_reminders


def test_capabilities_are_immutable():
    caps = capabilities_for("Issuer")
    with pytest.raises(ValidationError):
        caps.create_deal = False
    assert isinstance(caps, Capabilities)


# ── resolve_role_preference ──────────────────────────────────────────────────


def test_query_role_wins_and_is_persisted():
    assert resolve_role_preference("bookrunner", "Investor") == (Role.BOOKRUNNER, True)


def test_invalid_query_role_falls_back_to_stored():
    assert resolve_role_preference("wizard", "Investor") == (Role.INVESTOR, False)


def test_default_when_nothing_valid():
    assert resolve_role_preference(None, "garbage", Role.BOOKRUNNER) == (Role.BOOKRUNNER, False)
