from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import customer_by_phone
from errors import NotFoundError
from models import MessageAuthorType, TicketPriority, TicketStatus, User
from tenant_scope import TenantScope
from ticket_service import SLA_HOURS, ticket_service


@pytest.fixture
async def ticket(scope, db):
    customer = await customer_by_phone(db, "+1234567890")
    return await ticket_service.create(
        scope,
        subject="No internet since morning",
        message="The router shows a red light.",
        priority=TicketPriority.HIGH,
        customer_id=customer.id
    )


async def test_create_sets_sla_and_first_message(ticket):
    assert ticket.status == TicketStatus.OPEN
    window = ticket.sla_due_at - ticket.created_at
    assert timedelta(hours=8) - timedelta(seconds=5) < window <= timedelta(hours=8)
    assert len(ticket.messages) == 1
    assert ticket.messages[0].author_type == MessageAuthorType.CUSTOMER
    assert ticket.customer.name == "John Smith"


def test_sla_hours_by_priority():
    assert [SLA_HOURS[p] for p in TicketPriority] == [72, 24, 8, 4]


async def test_create_for_unknown_customer(scope):
    with pytest.raises(NotFoundError, match="Customer not found"):
        await ticket_service.create(scope, subject="Hello", message="Hi", customer_id=999)


async def test_reply_reopens_closed_ticket(scope, ticket):
    closed = await ticket_service.update_status(scope, ticket.id, TicketStatus.CLOSED)
    assert closed.resolved_at is not None

    message = await ticket_service.reply(scope, ticket.id, "Technician is on the way.")

    assert message.author_type == MessageAuthorType.STAFF
    reopened = await ticket_service.get_by_id(scope, ticket.id)
    assert reopened.status == TicketStatus.OPEN
    assert reopened.resolved_at is None
    assert [m.author_type for m in reopened.messages] == [MessageAuthorType.CUSTOMER, MessageAuthorType.STAFF]


async def test_assign_moves_ticket_in_progress(scope, db, ticket):
    support = (await db.execute(select(User).where(User.email == "support@demo-isp.com"))).scalar_one()

    assigned = await ticket_service.assign(scope, ticket.id, support.id)

    assert assigned.assigned_user_id == support.id
    assert assigned.status == TicketStatus.IN_PROGRESS


async def test_cannot_assign_user_of_another_tenant(scope, db, ticket, other_tenant):
    outsider = (await db.execute(select(User).where(User.tenant_id == other_tenant.id))).scalar_one()

    with pytest.raises(NotFoundError, match="User not found"):
        await ticket_service.assign(scope, ticket.id, outsider.id)


async def test_ticket_is_invisible_to_other_tenant(db, ticket, other_tenant):
    with pytest.raises(NotFoundError):
        await ticket_service.get_by_id(TenantScope(db, other_tenant.id), ticket.id)
