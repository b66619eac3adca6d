import structlog
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user_id
from app.core.database import get_db
from app.models.business import Business
from app.services.business import business_service

logger = structlog.get_logger(__name__)


async def get_owned_business(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Business:
    """
    Business owned by the authenticated user.

    Every owner-side endpoint is scoped to this business, so an owner can
    never reach another business's data.
    """
    business = await business_service.get_business_by_owner(db, user_id)
    if not business:
        logger.warning("No business registered for user", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
        )
    return business
