"""
services/contact/router.py
Public contact form. Messages are stored for the admin inbox.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.models.models import ContactMessage
from shared.schemas.schemas import ContactCreateRequest, ContactResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contact", tags=["Contact"])


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def submit_contact(data: ContactCreateRequest, db: AsyncSession = Depends(get_db)):
    """No account needed. Name, email, subject and message are required."""
    message = ContactMessage(**data.model_dump())
    db.add(message)
    await db.commit()

    logger.info(f"Contact message {message.id} received from {message.email}")
    return ContactResponse.model_validate(message)
