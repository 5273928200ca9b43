"""
services/support/router.py
Support tickets. Any signed-in user opens and reads their own tickets;
admins see all of them and move each one along
open → in_progress → resolved → closed, one step at a time.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import AuthorizationError, NotFoundError
from shared.middleware.auth import SessionContext, get_session, require_admin
from shared.models.models import SupportTicket, TicketCategory, TicketPriority, TicketStatus
from shared.schemas.schemas import TicketAdvanceRequest, TicketCreateRequest, TicketResponse
from shared.utils.audit import log_admin_action
from shared.utils.pagination import page_payload, paginate
from shared.utils.transitions import check_ticket_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support/tickets", tags=["Support"])


async def _get_ticket_or_404(ticket_id: UUID, db: AsyncSession) -> SupportTicket:
    result = await db.execute(select(SupportTicket).where(SupportTicket.id == ticket_id))
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    data: TicketCreateRequest,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    """Open a ticket. Category defaults to `general`, priority to `medium`."""
    ticket = SupportTicket(
        user_id=session.user.id,
        status=TicketStatus.OPEN,
        **data.model_dump(),
    )
    db.add(ticket)
    await db.commit()

    logger.info(f"Ticket {ticket.id} opened by {session.user.id} ({ticket.priority.value})")
    return TicketResponse.model_validate(ticket)


@router.get("")
async def list_tickets(
    ticket_status: Optional[TicketStatus] = Query(None, alias="status"),
    priority: Optional[TicketPriority] = None,
    category: Optional[TicketCategory] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    """Own tickets, newest first. Admins see every ticket."""
    query = select(SupportTicket).order_by(SupportTicket.created_at.desc())
    if not session.is_admin:
        query = query.where(SupportTicket.user_id == session.user.id)
    if ticket_status:
        query = query.where(SupportTicket.status == ticket_status)
    if priority:
        query = query.where(SupportTicket.priority == priority)
    if category:
        query = query.where(SupportTicket.category == category)

    rows, total = await paginate(db, query, page, page_size)
    items = [TicketResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: UUID,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    ticket = await _get_ticket_or_404(ticket_id, db)
    if not session.is_admin and ticket.user_id != session.user.id:
        raise AuthorizationError("Not authorized to view this ticket")
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/advance", response_model=TicketResponse)
async def advance_ticket(
    ticket_id: UUID,
    data: TicketAdvanceRequest,
    request: Request,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Move a ticket to the next status. Skipping or reversing is refused (409)."""
    ticket = await _get_ticket_or_404(ticket_id, db)
    previous = ticket.status
    check_ticket_transition(previous, data.status)

    ticket.status = data.status
    await log_admin_action(
        db, session.user, "ADVANCE_TICKET", "SupportTicket", str(ticket.id),
        {"from": previous.value, "to": data.status.value}, request,
    )
    await db.commit()

    logger.info(f"Ticket {ticket.id}: {previous.value} → {data.status.value}")
    return TicketResponse.model_validate(ticket)
