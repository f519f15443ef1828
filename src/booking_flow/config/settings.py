"""Runtime configuration for booking runs.

Relies on pydantic-settings so that environment variables (prefixed with ``BOOKING_``)
can override defaults. See `.env.example` for common values.
"""
from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from booking_flow.booking.models import BookingRequest, RoomRequest
from booking_flow.services.graphql_client import DEFAULT_GRAPHQL_BASE_URL
from booking_flow.services.tool_client import DEFAULT_TOOL_BASE_URL
from booking_flow.workflow.state import ExecutionMode


class Settings(BaseSettings):
    """Captures runtime configuration for the booking workflow."""

    api_surface: Literal["tool", "graphql"] = Field(
        default="tool", description="Remote dialect: 'tool' endpoints or 'graphql'"
    )
    api_base_url: Optional[str] = Field(
        default=None, description="Override the base URL of the selected dialect"
    )
    bearer_token: Optional[str] = Field(default=None, description="Bearer token for the booking API")
    http_timeout_s: float = Field(default=120.0, description="Per-request HTTP timeout in seconds")
    payment_method: str = Field(default="CREDIT_LINE")

    poll_initial_delay_s: float = Field(
        default=2.0, description="Seconds to wait before the first search results poll"
    )
    poll_interval_s: float = Field(default=1.0, description="Seconds between search result polls")
    poll_max_attempts: int = Field(default=30, description="Maximum number of result polls")
    poll_timeout_s: Optional[float] = Field(
        default=None, description="Optional wall-clock budget for the whole poll loop"
    )

    price_ceiling: Optional[float] = Field(
        default=50.0, description="Prefer hotels priced at or below this amount"
    )
    currency: str = Field(default="EUR")
    destination: Optional[str] = Field(
        default="bali, indonesia", description="Free-text destination resolved to a region id"
    )
    region_id: Optional[str] = Field(default=None, description="Skip location lookup and search this region")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    adults: int = Field(default=2, description="Adults per room; guest records must match")
    child_ages: tuple[int, ...] = Field(default=(), description="Child ages for the single default room")
    nationality: Optional[str] = Field(default="US")
    check_in: Optional[date] = None
    check_in_offset_days: int = Field(
        default=180, description="Days from today used when `check_in` is not set"
    )
    nights: int = Field(default=1, description="Length of stay in nights")

    execution_mode: ExecutionMode = Field(
        default=ExecutionMode.SEARCH,
        description="'search' (no charge), 'book' (confirm) or 'verify' (confirm then cancel)",
    )
    compensation_delay_s: float = Field(
        default=3.0, description="Pause between confirm and the compensating cancellation"
    )
    session_ttl_s: Optional[float] = Field(
        default=1800.0, description="Validity window of a search session in seconds"
    )

    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=Path("data/logs"))

    model_config = SettingsConfigDict(
        env_prefix="BOOKING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_dir", mode="before")
    def _expand_log_dir(cls, value: str | Path | None) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("check_in", mode="before")
    def _parse_check_in(cls, value: str | date | None) -> Optional[date]:
        if value in (None, ""):
            return None
        if isinstance(value, date):
            return value
        return date.fromisoformat(value)

    @field_validator("execution_mode", mode="before")
    def _parse_execution_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("child_ages", mode="before")
    def _parse_child_ages(cls, value: object) -> tuple[int, ...]:
        if value is None or value == "":
            return ()
        if isinstance(value, int):
            return (value,)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",")]
            return tuple(int(part) for part in parts if part)
        if isinstance(value, (list, tuple)):
            return tuple(int(item) for item in value)
        raise TypeError("child_ages must be provided as a comma-separated string or list")

    @field_validator("nights", "adults", "poll_max_attempts")
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("poll_initial_delay_s", "poll_interval_s", "compensation_delay_s")
    def _validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("delays must not be negative")
        return value

    @model_validator(mode="after")
    def _check_coordinates(self) -> "Settings":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def resolved_base_url(self) -> str:
        if self.api_base_url:
            return self.api_base_url
        return DEFAULT_GRAPHQL_BASE_URL if self.api_surface == "graphql" else DEFAULT_TOOL_BASE_URL

    def poll_options(self) -> dict[str, object]:
        return {
            "initial_delay": self.poll_initial_delay_s,
            "interval": self.poll_interval_s,
            "max_attempts": self.poll_max_attempts,
            "timeout": self.poll_timeout_s,
        }

    def invoker_kwargs(self) -> dict[str, object]:
        return {
            "base_url": self.resolved_base_url(),
            "bearer_token": self.bearer_token,
            "timeout": self.http_timeout_s,
        }

    def build_surface(self):  # noqa: D401
        """Return the dialect adapter for ``api_surface``."""
        from booking_flow.surfaces import GraphqlSurface, ToolSurface

        if self.api_surface == "graphql":
            return GraphqlSurface(payment_method=self.payment_method)
        return ToolSurface(payment_method=self.payment_method)

    def build_invoker(self):  # noqa: D401
        """Return an unopened invoker matching ``api_surface``; close it with ``aclose``."""
        from booking_flow.services import GraphqlInvoker, ToolInvoker
        from booking_flow.surfaces import GRAPHQL_DOCUMENTS

        if self.api_surface == "graphql":
            return GraphqlInvoker(documents=GRAPHQL_DOCUMENTS, **self.invoker_kwargs())
        return ToolInvoker(**self.invoker_kwargs())

    def check_in_date(self, *, today: Optional[date] = None) -> date:
        if self.check_in is not None:
            return self.check_in
        return (today or date.today()) + timedelta(days=self.check_in_offset_days)

    def booking_request(self, *, today: Optional[date] = None) -> BookingRequest:
        """Build a single-room request from the configured defaults."""
        start = self.check_in_date(today=today)
        return BookingRequest(
            start_date=start,
            end_date=start + timedelta(days=self.nights),
            currency=self.currency,
            rooms=[RoomRequest(adults=self.adults, child_ages=self.child_ages)],
            destination_query=self.destination,
            region_id=self.region_id,
            latitude=self.latitude,
            longitude=self.longitude,
            radius_km=self.radius_km,
            nationality=self.nationality,
        )
