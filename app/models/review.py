import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

from app.core.database import Base
from app.utils.clock import utcnow

MIN_RATING = 1
MAX_RATING = 5


class Review(Base):
    """A customer's rating of a business they visited. One per customer and business."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_user_id = Column(String(255), nullable=False, index=True)

    # Completed visit that made the customer eligible
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)

    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("business_id", "customer_user_id", name="uq_review_per_customer"),
        CheckConstraint(
            f"rating >= {MIN_RATING} AND rating <= {MAX_RATING}", name="check_rating_range"
        ),
    )

    def __repr__(self):
        return (
            f"<Review(id={self.id}, business_id={self.business_id}, "
            f"rating={self.rating})>"
        )
