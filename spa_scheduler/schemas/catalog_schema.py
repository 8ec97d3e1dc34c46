"""Technician and service catalog models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Technician(BaseModel):
    """A bookable technician. Deactivated, never deleted."""
    id: Optional[int] = None
    name: str
    birth_year: Optional[int] = None
    avatar: Optional[str] = None
    notes: Optional[str] = None
    specialties: list[str] = Field(default_factory=list)
    experience: int = 0
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    is_active: bool = True
    created_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class TechnicianSummary(BaseModel):
    """The slice of a technician returned with an availability slot."""
    id: int
    name: str
    specialties: list[str] = Field(default_factory=list)
    rating: float = 0.0

    @classmethod
    def from_technician(cls, technician: Technician) -> "TechnicianSummary":
        return cls(
            id=technician.id,
            name=technician.name,
            specialties=list(technician.specialties),
            rating=technician.rating,
        )


class Service(BaseModel):
    """A main service priced per duration tier (minutes -> price)."""
    id: Optional[int] = None
    name: str
    description: Optional[str] = None
    prices: dict[int, int]
    is_active: bool = True

    @field_validator("prices")
    @classmethod
    def _valid_tiers(cls, value: dict[int, int]) -> dict[int, int]:
        if not value:
            raise ValueError("a service needs at least one duration tier")
        for duration, price in value.items():
            if duration <= 0:
                raise ValueError(f"duration tier must be positive, got {duration}")
            if price < 0:
                raise ValueError(f"price must not be negative, got {price}")
        return dict(sorted(value.items()))

    @property
    def durations(self) -> list[int]:
        return sorted(self.prices)

    def price_for(self, duration: int) -> Optional[int]:
        return self.prices.get(duration)


class AdditionalService(BaseModel):
    """An add-on with a single flat price."""
    id: Optional[int] = None
    name: str
    price: int = Field(ge=0)
    is_active: bool = True
