"""Read models for the catalog and user directory collaborators."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import UserRole


class Listing(BaseModel):
    """Listing attributes the booking core reads at booking time."""

    model_config = ConfigDict(strict=True)

    listing_id: str
    guide_id: str
    title: str = ""
    price_per_person: Decimal = Field(..., ge=0)
    max_group_size: int = Field(..., ge=1)
    is_active: bool = True
    is_deleted: bool = False

    @property
    def is_bookable(self) -> bool:
        return self.is_active and not self.is_deleted


class Actor(BaseModel):
    """An authenticated user resolved to their marketplace profiles."""

    model_config = ConfigDict(strict=True)

    user_id: str
    role: UserRole
    email: str | None = None
    tourist_id: str | None = None
    guide_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class GuideProfile(BaseModel):
    """Guide profile with lifetime booking counters."""

    model_config = ConfigDict(strict=True)

    guide_id: str
    name: str = ""
    email: str | None = None
    is_deleted: bool = False
    total_bookings: int = 0
    total_revenue: Decimal = Decimal("0")


class TouristProfile(BaseModel):
    """Tourist profile with lifetime booking counters."""

    model_config = ConfigDict(strict=True)

    tourist_id: str
    name: str = ""
    email: str | None = None
    total_tours_booked: int = 0
