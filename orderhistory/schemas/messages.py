"""
orderhistory/schemas/messages.py

Closed set of tagged messages exchanged with the scrape session.

Inbound messages drive the session; outbound messages report progress and
results. Every variant is discriminated on its `action` field.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class ScrapeYears(BaseModel):
    action: Literal["scrape_years"] = "scrape_years"
    years: list[int] = Field(..., min_length=1)


class ScrapeRange(BaseModel):
    action: Literal["scrape_range"] = "scrape_range"
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_order(self) -> "ScrapeRange":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ScrapeTransactions(BaseModel):
    action: Literal["scrape_transactions"] = "scrape_transactions"


class ClearCache(BaseModel):
    action: Literal["clear_cache"] = "clear_cache"


class ForceLogout(BaseModel):
    action: Literal["force_logout"] = "force_logout"


class SignInCompleted(BaseModel):
    action: Literal["signin_completed"] = "signin_completed"


class Abort(BaseModel):
    action: Literal["abort"] = "abort"


ControlMessage = Annotated[
    Union[
        ScrapeYears,
        ScrapeRange,
        ScrapeTransactions,
        ClearCache,
        ForceLogout,
        SignInCompleted,
        Abort,
    ],
    Field(discriminator="action"),
]

_control_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


def parse_control_message(payload: dict[str, Any]) -> ControlMessage:
    """
    Validate a raw inbound payload into its control message variant.

    Raises pydantic.ValidationError for unknown actions or bad fields.
    """

    return _control_adapter.validate_python(payload)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class StatisticsUpdate(BaseModel):
    action: Literal["statistics_update"] = "statistics_update"
    statistics: dict[str, int]
    purpose: str


class AdvertisePeriods(BaseModel):
    action: Literal["advertise_periods"] = "advertise_periods"
    periods: list[int] = Field(default_factory=list)


class SignInRequired(BaseModel):
    action: Literal["signin_required"] = "signin_required"
    url: str
    purpose: str


class Notification(BaseModel):
    action: Literal["notification"] = "notification"
    text: str


class OrdersReady(BaseModel):
    action: Literal["orders_ready"] = "orders_ready"
    purpose: str
    orders: list[dict[str, Any]] = Field(default_factory=list)


class TransactionsReady(BaseModel):
    action: Literal["transactions_ready"] = "transactions_ready"
    purpose: str
    transactions: list[dict[str, Any]] = Field(default_factory=list)


OutboundMessage = Union[
    StatisticsUpdate,
    AdvertisePeriods,
    SignInRequired,
    Notification,
    OrdersReady,
    TransactionsReady,
]
