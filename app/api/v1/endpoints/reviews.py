from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user_id
from app.api.v1.endpoints.businesses import get_active_business
from app.core.database import get_db
from app.models.business import Business
from app.models.review import Review
from app.schemas.review import (
    BusinessRatingsResponse,
    BusinessReviewsResponse,
    ReviewCreate,
    ReviewEligibility,
    ReviewResponse,
    ReviewUpdate,
)
from app.services.business import business_service
from app.services.review import review_service

router = APIRouter()


async def get_own_review(
    review_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Review:
    review = await review_service.get_review_by_uuid(db, review_uuid)
    if not review:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    if review.customer_user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only change your own reviews",
        )
    return review


@router.get("/business/{business_uuid}", response_model=BusinessReviewsResponse)
async def list_business_reviews(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """Reviews of a business, newest first, with its rating summary."""
    reviews = await review_service.list_business_reviews(
        db, business.id, limit=limit, offset=offset
    )
    stats = await review_service.get_rating_summary(db, business.id)
    return {
        "reviews": reviews,
        "stats": stats,
        "pagination": {
            "offset": offset,
            "limit": limit,
            "has_more": offset + len(reviews) < stats["total_reviews"],
        },
    }


@router.get("/ratings", response_model=BusinessRatingsResponse)
async def get_business_ratings(db: AsyncSession = Depends(get_db)):
    """Average rating per business for the discovery page."""
    return {"business_ratings": await review_service.get_business_ratings(db)}


@router.get("/can-review/{business_uuid}", response_model=ReviewEligibility)
async def can_review(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Whether the caller has a completed visit and no review yet."""
    return await review_service.get_eligibility(db, business, user_id)


@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def submit_review(
    review_data: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Review a business after a completed visit. One review per business."""
    business = await business_service.get_business_by_uuid(db, review_data.business_uuid)
    if not business or not business.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
        )
    return await review_service.submit_review(db, business, user_id, review_data)


@router.put("/{review_uuid}", response_model=ReviewResponse)
async def update_review(
    review_update: ReviewUpdate,
    db: AsyncSession = Depends(get_db),
    review: Review = Depends(get_own_review),
):
    """Change the rating or comment of the caller's review."""
    return await review_service.update_review(db, review, review_update)


@router.delete("/{review_uuid}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    db: AsyncSession = Depends(get_db),
    review: Review = Depends(get_own_review),
):
    await review_service.delete_review(db, review)
