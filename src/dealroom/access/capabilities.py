"""Role capability table.

A fixed, read-only mapping from Role to the permissions the UI and API
check before exposing an action. Lookups are total: any input, including
None or garbage, yields a Capabilities record.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from src.dealroom.access.roles import Role, normalize_role


class Capabilities(BaseModel):
    """Boolean permission set for one role. Immutable."""

    model_config = ConfigDict(frozen=True)

    view_investor_book: bool = False
    send_reminders: bool = False
    download_package: bool = False
    see_all_qa: bool = False
    see_all_commitments: bool = False
    manage_deals: bool = False
    create_deal: bool = False
    edit_term_sheet: bool = False
    publish_deal: bool = False
    invite_lenders: bool = False
    view_execution_tracker: bool = False
    upload_documents: bool = False
    answer_qa: bool = False
    submit_commitment: bool = False
    upload_markup: bool = False
    sign_nda: bool = False


NO_CAPABILITIES = Capabilities()

ROLE_CAPABILITIES: dict[Role, Capabilities] = {
    Role.BOOKRUNNER: Capabilities(
        view_investor_book=True,
        send_reminders=True,
        download_package=True,
        see_all_qa=True,
        see_all_commitments=True,
        manage_deals=True,
        create_deal=False,
        edit_term_sheet=True,
        publish_deal=True,
        invite_lenders=True,
        view_execution_tracker=True,
        upload_documents=True,
        answer_qa=True,
    ),
    Role.ISSUER: Capabilities(
        view_investor_book=True,
        send_reminders=True,
        download_package=True,
        see_all_qa=True,
        see_all_commitments=True,
        manage_deals=True,
        create_deal=True,
        edit_term_sheet=True,
        publish_deal=False,
        invite_lenders=False,
        view_execution_tracker=True,
        upload_documents=True,
        answer_qa=True,
    ),
    Role.INVESTOR: Capabilities(
        download_package=True,
        submit_commitment=True,
        upload_markup=True,
        sign_nda=True,
    ),
}


def capabilities_for(role: str | Role | None) -> Capabilities:
    """Look up the capability record for a role.

    Unknown or absent roles get NO_CAPABILITIES rather than an error.
    """
    normalized = normalize_role(role)
    if normalized is None:
        return NO_CAPABILITIES
    return ROLE_CAPABILITIES[normalized]
