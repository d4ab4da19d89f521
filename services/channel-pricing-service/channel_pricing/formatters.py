from __future__ import annotations

import os
from typing import Literal

PricingCurrency = Literal["LKR", "USD"]

PRICING_DEFAULT_CURRENCY = os.getenv("PRICING_DEFAULT_CURRENCY", "LKR").strip().upper() or "LKR"

_PREFIX: dict[str, str] = {
    "LKR": "LKR ",
    "USD": "$",
}


def normalize_currency(code: str | None) -> PricingCurrency:
    c = (code or "").strip().upper() or PRICING_DEFAULT_CURRENCY
    if c not in _PREFIX:
        raise ValueError("currency must be LKR or USD")
    return c  # type: ignore[return-value]


def format_currency(amount: float, currency: str | None = None) -> str:
    """Display formatting only; amounts are never converted between currencies."""
    cur = normalize_currency(currency)
    sign = "-" if amount < 0 else ""
    return f"{sign}{_PREFIX[cur]}{abs(amount):,.2f}"
