from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.review import MAX_RATING, MIN_RATING


class ReviewCreate(BaseModel):
    """Schema for submitting a review."""
    business_uuid: UUID
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: str = Field("", max_length=2000)

    @field_validator('comment')
    @classmethod
    def strip_comment(cls, v):
        return v.strip()


class ReviewUpdate(BaseModel):
    """Schema for editing a review. Omitted fields stay as they are."""
    rating: Optional[int] = Field(None, ge=MIN_RATING, le=MAX_RATING)
    comment: Optional[str] = Field(None, max_length=2000)

    @field_validator('rating', 'comment')
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator('comment')
    @classmethod
    def strip_comment(cls, v):
        return v.strip()


class ReviewResponse(BaseModel):
    uuid: UUID
    business_id: int
    customer_user_id: str
    rating: int
    comment: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RatingSummary(BaseModel):
    total_reviews: int = 0
    average_rating: float = 0.0
    rating_distribution: dict[int, int] = Field(default_factory=dict)


class Pagination(BaseModel):
    offset: int
    limit: int
    has_more: bool


class BusinessReviewsResponse(BaseModel):
    reviews: list[ReviewResponse]
    stats: RatingSummary
    pagination: Pagination


class BusinessRating(BaseModel):
    average_rating: float
    total_reviews: int


class BusinessRatingsResponse(BaseModel):
    business_ratings: dict[str, BusinessRating]


class ReviewEligibility(BaseModel):
    can_review: bool
    has_reviewed: bool
    has_visited: bool
    existing_review: Optional[ReviewResponse] = None
