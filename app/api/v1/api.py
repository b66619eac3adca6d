from fastapi import APIRouter

from app.api.v1.endpoints import (
    bookings,
    business,
    businesses,
    reservations,
    reviews,
    users,
)

api_router = APIRouter()

# Public discovery and availability
api_router.include_router(businesses.router, prefix="/businesses", tags=["businesses"])

# Booking admission (guests and signed-in customers)
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

# Reservation lifecycle for customers and owners
api_router.include_router(
    reservations.router, prefix="/reservations", tags=["reservations"]
)

# Owner business management
api_router.include_router(business.router, prefix="/business", tags=["business"])

# Customer account
api_router.include_router(users.router, prefix="/users", tags=["users"])

# Reviews and ratings
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
