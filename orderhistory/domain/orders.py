"""
orderhistory/domain/orders.py

Typed records produced by the entity assembly layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any


@dataclass(frozen=True)
class OrderItem:
    """
    One line item from an order detail page.
    """

    order_id: str
    description: str
    url: str
    price: str = ""
    quantity: int = 1
    order_date: date | None = None


@dataclass(frozen=True)
class OrderDetails:
    """
    Money and recipient fields read from an order detail page. Amounts are
    kept as displayed, currency symbol included.
    """

    date: date | None = None
    total: str = ""
    postage: str = ""
    postage_refund: str = ""
    gift: str = ""
    us_tax: str = ""
    vat: str = ""
    gst: str = ""
    pst: str = ""
    refund: str = ""
    who: str = ""
    invoice_url: str = ""


@dataclass(frozen=True)
class OrderDetailPage:
    details: OrderDetails
    items: list[OrderItem] = field(default_factory=list)


@dataclass(frozen=True)
class OrderRecord:
    """
    A fully resolved order.
    """

    id: str
    site: str
    list_url: str
    detail_url: str
    payments_url: str
    invoice_url: str
    date: date | None
    total: str
    who: str
    postage: str = ""
    postage_refund: str = ""
    gift: str = ""
    us_tax: str = ""
    vat: str = ""
    gst: str = ""
    pst: str = ""
    refund: str = ""
    items: list[OrderItem] = field(default_factory=list)
    payments: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["date"] = self.date.isoformat() if self.date else None
        payload["items"] = [
            {**item, "order_date": item["order_date"].isoformat() if item["order_date"] else None}
            for item in payload["items"]
        ]
        return payload


@dataclass(frozen=True)
class Transaction:
    """
    One card transaction from the payments feed.
    """

    date: date
    order_ids: list[str]
    card_info: str
    amount: float
    vendor: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "order_ids": list(self.order_ids),
            "card_info": self.card_info,
            "amount": self.amount,
            "vendor": self.vendor,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Transaction":
        return cls(
            date=date.fromisoformat(payload["date"]),
            order_ids=list(payload.get("order_ids") or []),
            card_info=str(payload.get("card_info", "??")),
            amount=float(payload.get("amount", 0.0)),
            vendor=str(payload.get("vendor", "??")),
        )

    def identity(self) -> tuple[Any, ...]:
        return (self.date, tuple(self.order_ids), self.card_info, self.amount, self.vendor)
