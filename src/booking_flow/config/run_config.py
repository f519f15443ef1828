"""User-friendly run configuration loader for manual runs.

Example::

    [search]
    destination = "bali, indonesia"
    check_in = "+180d"
    nights = 2
    mode = "verify"

    [[rooms]]
    adults = 2
    guests = [
        { title = "Mr", first_name = "John", last_name = "Doe" },
        { title = "Mrs", first_name = "Jane", last_name = "Doe" },
    ]

    [contact]
    first_name = "John"
    last_name = "Doe"
    email = "john.doe@example.com"
    phone = "+1234567890"
"""
from __future__ import annotations

import re
import tomllib
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_flow.booking.models import (
    BookingRequest,
    ContactPerson,
    Guest,
    RoomGuests,
    RoomRequest,
)

from .settings import Settings

_RELATIVE_CHECK_IN = re.compile(r"^\+?(?P<count>\d+)\s*(?P<unit>[dDwW])$")


def _resolve_check_in(value: str, *, today: date) -> date:
    match = _RELATIVE_CHECK_IN.match(value.strip())
    if not match:
        return date.fromisoformat(value.strip())
    count = int(match.group("count"))
    days = count * 7 if match.group("unit").lower() == "w" else count
    return today + timedelta(days=days)


class SearchSection(BaseModel):
    """Search overrides decoded from the run config."""

    destination: Optional[str] = None
    region_id: Optional[str] = None
    check_in: Optional[str] = Field(
        default=None, description="ISO 8601 date or relative offset such as '+14d' or '26w'"
    )
    nights: Optional[int] = Field(default=None, ge=1)
    currency: Optional[str] = None
    nationality: Optional[str] = None
    price_ceiling: Optional[float] = Field(default=None, ge=0)
    mode: Optional[str] = None

    @field_validator("destination", "region_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GuestSection(BaseModel):
    first_name: str
    last_name: str
    title: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)

    def to_guest(self) -> Guest:
        return Guest(
            first_name=self.first_name,
            last_name=self.last_name,
            title=self.title,
            age=self.age,
        )


class RoomSection(BaseModel):
    """One room: the occupancy searched for and the guests booked into it."""

    adults: Optional[int] = Field(default=None, ge=1)
    child_ages: list[int] = Field(default_factory=list)
    guests: list[GuestSection] = Field(default_factory=list)
    children: list[GuestSection] = Field(default_factory=list)

    def to_request(self, default_adults: int) -> RoomRequest:
        adults = self.adults if self.adults is not None else (len(self.guests) or default_adults)
        return RoomRequest(adults=adults, child_ages=tuple(self.child_ages))

    def to_guests(self) -> RoomGuests:
        return RoomGuests(
            adults=tuple(guest.to_guest() for guest in self.guests),
            children=tuple(child.to_guest() for child in self.children),
        )


class ContactSection(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    title: Optional[str] = None

    def to_contact(self) -> ContactPerson:
        return ContactPerson(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
            title=self.title,
        )


class RunConfig(BaseModel):
    """Top-level run configuration."""

    search: SearchSection = Field(default_factory=SearchSection)
    rooms: list[RoomSection] = Field(default_factory=list)
    contact: Optional[ContactSection] = None

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        if not path.exists():
            raise FileNotFoundError(f"Run configuration not found at {path}")
        with path.open("rb") as handle:
            data = tomllib.load(handle)
        return cls.model_validate(data)

    def apply(self, settings: Settings) -> Settings:
        """Return a copy of ``settings`` with the run overrides applied."""
        search = self.search
        updates: dict[str, object] = {}
        if search.destination is not None:
            updates["destination"] = search.destination
        if search.region_id is not None:
            updates["region_id"] = search.region_id
        if search.nights is not None:
            updates["nights"] = search.nights
        if search.currency is not None:
            updates["currency"] = search.currency
        if search.nationality is not None:
            updates["nationality"] = search.nationality
        if search.price_ceiling is not None:
            updates["price_ceiling"] = search.price_ceiling
        if search.mode is not None:
            updates["execution_mode"] = search.mode.strip().lower()
        if not updates:
            return settings
        return Settings.model_validate({**settings.model_dump(), **updates})

    def booking_request(self, settings: Settings, *, today: Optional[date] = None) -> BookingRequest:
        request = settings.booking_request(today=today)
        if self.search.check_in:
            start = _resolve_check_in(self.search.check_in, today=today or date.today())
            request.start_date = start
            request.end_date = start + timedelta(days=settings.nights)
        if self.rooms:
            request.rooms = [room.to_request(settings.adults) for room in self.rooms]
            request.guests = [room.to_guests() for room in self.rooms]
        if self.contact is not None:
            request.contact = self.contact.to_contact()
        return request
