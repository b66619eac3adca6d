from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateReviewError, ReviewNotAllowedError
from app.models.business import Business
from app.models.reservation import Reservation, ReservationStatus
from app.models.review import MAX_RATING, MIN_RATING, Review
from app.schemas.review import ReviewCreate, ReviewUpdate

logger = structlog.get_logger(__name__)


class ReviewService:
    """Service layer for customer reviews and business ratings.

    A customer may review a business once, and only after one of their
    reservations there was completed.
    """

    async def get_review_by_uuid(
        self, db: AsyncSession, review_uuid: UUID
    ) -> Optional[Review]:
        result = await db.execute(select(Review).where(Review.uuid == review_uuid))
        return result.scalar_one_or_none()

    async def get_customer_review(
        self, db: AsyncSession, business_id: int, user_id: str
    ) -> Optional[Review]:
        result = await db.execute(
            select(Review).where(
                Review.business_id == business_id,
                Review.customer_user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_completed_visit(
        self, db: AsyncSession, business_id: int, user_id: str
    ) -> Optional[Reservation]:
        """Most recent completed reservation of ``user_id`` at the business."""
        result = await db.execute(
            select(Reservation)
            .where(
                Reservation.business_id == business_id,
                Reservation.customer_user_id == user_id,
                Reservation.status == ReservationStatus.COMPLETED.value,
            )
            .order_by(Reservation.booking_date.desc(), Reservation.start_time.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_eligibility(
        self, db: AsyncSession, business: Business, user_id: str
    ) -> dict:
        existing = await self.get_customer_review(db, business.id, user_id)
        visit = await self.get_completed_visit(db, business.id, user_id)
        return {
            "can_review": existing is None and visit is not None,
            "has_reviewed": existing is not None,
            "has_visited": visit is not None,
            "existing_review": existing,
        }

    async def submit_review(
        self, db: AsyncSession, business: Business, user_id: str, review_data: ReviewCreate
    ) -> Review:
        """Create the caller's review of ``business``."""
        business_id = business.id
        if await self.get_customer_review(db, business_id, user_id):
            raise DuplicateReviewError(
                "You have already reviewed this business", business_id=business_id
            )

        visit = await self.get_completed_visit(db, business_id, user_id)
        if visit is None:
            logger.info(
                "Review rejected without completed visit",
                business_id=business_id,
                user_id=user_id,
            )
            raise ReviewNotAllowedError(
                "You can only review businesses you have visited",
                business_id=business_id,
            )

        review = Review(
            business_id=business_id,
            customer_user_id=user_id,
            reservation_id=visit.id,
            rating=review_data.rating,
            comment=review_data.comment,
        )
        db.add(review)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning(
                "Concurrent review for the same business", business_id=business_id, error=str(e)
            )
            raise DuplicateReviewError(
                "You have already reviewed this business", business_id=business_id
            )
        await db.refresh(review)

        logger.info(
            "Review submitted",
            review_id=review.id,
            business_id=business_id,
            rating=review.rating,
        )
        return review

    async def update_review(
        self, db: AsyncSession, review: Review, review_update: ReviewUpdate
    ) -> Review:
        update_data = review_update.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(review, field, value)

        await db.commit()
        await db.refresh(review)
        logger.info("Review updated", review_id=review.id, fields=list(update_data))
        return review

    async def delete_review(self, db: AsyncSession, review: Review):
        review_id, business_id = review.id, review.business_id
        await db.delete(review)
        await db.commit()
        logger.info("Review deleted", review_id=review_id, business_id=business_id)

    async def list_business_reviews(
        self, db: AsyncSession, business_id: int, limit: int = 10, offset: int = 0
    ) -> list[Review]:
        """Newest first."""
        result = await db.execute(
            select(Review)
            .where(Review.business_id == business_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_rating_summary(self, db: AsyncSession, business_id: int) -> dict:
        result = await db.execute(
            select(Review.rating, func.count())
            .where(Review.business_id == business_id)
            .group_by(Review.rating)
        )
        by_rating = dict(result.all())

        distribution = {
            rating: by_rating.get(rating, 0) for rating in range(MIN_RATING, MAX_RATING + 1)
        }
        total = sum(distribution.values())
        average = (
            sum(rating * count for rating, count in distribution.items()) / total
            if total
            else 0.0
        )
        return {
            "total_reviews": total,
            "average_rating": round(average, 1),
            "rating_distribution": distribution,
        }

    async def get_business_ratings(self, db: AsyncSession) -> dict[str, dict]:
        """Average rating and review count of every active business with reviews."""
        result = await db.execute(
            select(Business.uuid, func.avg(Review.rating), func.count(Review.id))
            .join(Review, Review.business_id == Business.id)
            .where(Business.is_active.is_(True))
            .group_by(Business.uuid)
        )
        return {
            str(business_uuid): {
                "average_rating": round(float(average), 1),
                "total_reviews": count,
            }
            for business_uuid, average, count in result.all()
        }


review_service = ReviewService()
