from __future__ import annotations

import allure
import pytest

from uatgen.orchestrator.models import TicketContext

pytestmark = [
    allure.epic("Job Orchestrator"),
    allure.feature("Ticket Input"),
]


@pytest.mark.parametrize(
    ("ticket_id", "content", "message"),
    [
        ("", "content", "Ticket id"),
        ("  ", "content", "Ticket id"),
        ("PROJ-1", "\n", "Ticket content"),
    ],
)
def test_ticket_requires_id_and_content(ticket_id: str, content: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        TicketContext(ticket_id=ticket_id, content=content)


def test_ticket_prompt_block_lists_components() -> None:
    with_components = TicketContext("PROJ-1", "  Reset password.  ", ("auth", "web"))
    without_components = TicketContext("PROJ-2", "Export invoices.")

    assert with_components.format_for_prompt() == (
        "Ticket: PROJ-1\nComponents: auth, web\n\nTicket Description:\nReset password.\n"
    )
    assert "Components: N/A" in without_components.format_for_prompt()
