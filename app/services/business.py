from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.business import Business, BusinessType
from app.models.business_settings import BusinessSettings
from app.models.special_date import SpecialDate, SpecialDateType
from app.models.working_hours import WorkingHours
from app.schemas.availability import (
    WEEKDAY_FIELDS,
    AppointmentSettings,
    AvailabilitySettings,
    AvailabilitySettingsUpdate,
    DayHours,
    SpecialDateSchema,
    WeeklyHours,
)
from app.schemas.business import BusinessCreate, BusinessUpdate

logger = structlog.get_logger(__name__)


class BusinessService:
    """Service layer for business profile and availability settings."""

    async def create_business(
        self, db: AsyncSession, owner_user_id: str, business_data: BusinessCreate
    ) -> Business:
        """Register a business for ``owner_user_id`` with default availability."""
        existing = await self.get_business_by_owner(db, owner_user_id)
        if existing:
            raise ValueError("User already owns a business")

        try:
            business_dict = business_data.model_dump()
            business_dict["type"] = business_data.type.value

            business = Business(owner_user_id=owner_user_id, **business_dict)
            db.add(business)
            await db.flush()

            db.add(BusinessSettings.defaults(business.id))
            self._add_working_hours(db, business.id, WeeklyHours())

            await db.commit()
            await db.refresh(business)

            logger.info(
                "Business created successfully",
                business_id=business.id,
                business_name=business.name,
                owner_user_id=owner_user_id,
            )
            return business

        except IntegrityError as e:
            await db.rollback()
            logger.error(
                "Failed to create business due to integrity constraint", error=str(e)
            )
            raise ValueError("User already owns a business")
        except Exception as e:
            await db.rollback()
            logger.error("Failed to create business", error=str(e))
            raise

    async def get_business(
        self, db: AsyncSession, business_id: int
    ) -> Optional[Business]:
        """Get business by ID."""
        business = await db.get(Business, business_id)
        if not business:
            logger.warning("Business not found", business_id=business_id)
        return business

    async def get_business_by_uuid(
        self, db: AsyncSession, business_uuid: UUID
    ) -> Optional[Business]:
        """Get business by UUID."""
        result = await db.execute(select(Business).where(Business.uuid == business_uuid))
        return result.scalar_one_or_none()

    async def get_business_by_owner(
        self, db: AsyncSession, owner_user_id: str
    ) -> Optional[Business]:
        result = await db.execute(
            select(Business).where(Business.owner_user_id == owner_user_id)
        )
        return result.scalar_one_or_none()

    async def get_businesses(
        self,
        db: AsyncSession,
        business_type: Optional[BusinessType] = None,
        skip: int = 0,
        limit: int = 100,
        active_only: bool = True,
    ) -> List[Business]:
        """Discovery listing, newest first."""
        query = select(Business)

        if active_only:
            query = query.where(Business.is_active.is_(True))
        if business_type is not None:
            query = query.where(Business.type == business_type.value)

        query = query.order_by(Business.created_at.desc(), Business.id.desc())
        query = query.offset(skip).limit(limit)

        result = await db.execute(query)
        businesses = result.scalars().all()

        logger.info(
            "Retrieved businesses",
            count=len(businesses),
            business_type=business_type.value if business_type else None,
        )
        return list(businesses)

    async def update_business(
        self, db: AsyncSession, business: Business, business_update: BusinessUpdate
    ) -> Business:
        """Update business profile fields that were sent."""
        update_data = business_update.model_dump(exclude_unset=True)
        if "type" in update_data and update_data["type"] is not None:
            update_data["type"] = update_data["type"].value

        for field, value in update_data.items():
            setattr(business, field, value)

        try:
            await db.commit()
            await db.refresh(business)
        except Exception as e:
            await db.rollback()
            logger.error(
                "Failed to update business", business_id=business.id, error=str(e)
            )
            raise

        logger.info(
            "Business updated successfully",
            business_id=business.id,
            updated_fields=list(update_data.keys()),
        )
        return business

    async def deactivate_business(self, db: AsyncSession, business: Business) -> Business:
        """Soft delete: hide the business from discovery and booking."""
        business.is_active = False
        await db.commit()
        await db.refresh(business)
        logger.info("Business soft deleted", business_id=business.id)
        return business

    async def get_availability_settings(
        self, db: AsyncSession, business: Business
    ) -> AvailabilitySettings:
        """Working hours, appointment settings and special dates as one document."""
        settings_row = (
            await db.execute(
                select(BusinessSettings).where(
                    BusinessSettings.business_id == business.id
                )
            )
        ).scalar_one_or_none() or BusinessSettings.defaults(business.id)

        hours_rows = (
            await db.execute(
                select(WorkingHours).where(WorkingHours.business_id == business.id)
            )
        ).scalars().all()
        by_weekday = {row.weekday: row for row in hours_rows}

        # Weekdays without a stored row are closed
        defaults = WeeklyHours()
        weekly = WeeklyHours(
            **{
                name: DayHours(
                    enabled=by_weekday[index].is_enabled,
                    open=by_weekday[index].open_time,
                    close=by_weekday[index].close_time,
                )
                if index in by_weekday
                else DayHours(
                    enabled=False,
                    open=getattr(defaults, name).open,
                    close=getattr(defaults, name).close,
                )
                for index, name in enumerate(WEEKDAY_FIELDS)
            }
        )

        special_rows = (
            await db.execute(
                select(SpecialDate)
                .where(SpecialDate.business_id == business.id)
                .order_by(SpecialDate.date)
            )
        ).scalars().all()

        return AvailabilitySettings(
            working_hours=weekly,
            appointment_settings=AppointmentSettings.model_validate(settings_row),
            special_dates=[
                SpecialDateSchema(
                    date=row.date,
                    type=SpecialDateType(row.override_type),
                    open=row.open_time,
                    close=row.close_time,
                    reason=row.reason,
                )
                for row in special_rows
            ],
        )

    async def update_availability_settings(
        self,
        db: AsyncSession,
        business: Business,
        update: AvailabilitySettingsUpdate,
    ) -> AvailabilitySettings:
        """Replace the sections present in ``update``.

        Existing reservations are kept even when they no longer fit the new
        schedule; they simply stop counting against slots that disappear.
        """
        try:
            if update.appointment_settings is not None:
                settings_row = (
                    await db.execute(
                        select(BusinessSettings).where(
                            BusinessSettings.business_id == business.id
                        )
                    )
                ).scalar_one_or_none()
                if settings_row is None:
                    settings_row = BusinessSettings(business_id=business.id)
                    db.add(settings_row)
                for field, value in update.appointment_settings.model_dump().items():
                    setattr(settings_row, field, value)

            if update.working_hours is not None:
                await db.execute(
                    delete(WorkingHours).where(WorkingHours.business_id == business.id)
                )
                self._add_working_hours(db, business.id, update.working_hours)

            if update.special_dates is not None:
                await db.execute(
                    delete(SpecialDate).where(SpecialDate.business_id == business.id)
                )
                for special in update.special_dates:
                    custom = special.type == SpecialDateType.CUSTOM_HOURS
                    db.add(
                        SpecialDate(
                            business_id=business.id,
                            date=special.date,
                            override_type=special.type.value,
                            open_time=special.open if custom else None,
                            close_time=special.close if custom else None,
                            reason=special.reason,
                        )
                    )

            await db.commit()

        except IntegrityError as e:
            await db.rollback()
            logger.error(
                "Failed to update availability due to integrity constraint",
                business_id=business.id,
                error=str(e),
            )
            raise ValueError("Availability settings violate a constraint")
        except Exception as e:
            await db.rollback()
            logger.error(
                "Failed to update availability", business_id=business.id, error=str(e)
            )
            raise

        logger.info(
            "Availability settings updated",
            business_id=business.id,
            sections=list(update.model_dump(exclude_none=True)),
        )
        return await self.get_availability_settings(db, business)

    def _add_working_hours(self, db: AsyncSession, business_id: int, weekly: WeeklyHours):
        for weekday, day in weekly.by_weekday().items():
            db.add(
                WorkingHours(
                    business_id=business_id,
                    weekday=weekday,
                    is_enabled=day.enabled,
                    open_time=day.open,
                    close_time=day.close,
                )
            )


business_service = BusinessService()
