# Import all models to ensure they are registered with SQLAlchemy
from . import (
    business,
    business_settings,
    notification,
    reservation,
    review,
    special_date,
    working_hours,
)

__all__ = [
    "business",
    "business_settings",
    "notification",
    "reservation",
    "review",
    "special_date",
    "working_hours",
]
