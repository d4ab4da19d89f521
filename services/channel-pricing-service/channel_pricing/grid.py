from __future__ import annotations

import os
from typing import Iterable, Sequence

from .domain import (
    DEFAULT_MEAL_PLANS,
    AdjustmentParameters,
    Channel,
    GuestType,
    MealPlan,
    PricingRow,
    StayType,
    is_set,
    to_number,
)
from .registry import channels_for_tab

PRICING_GRID_COLUMNS = int(os.getenv("PRICING_GRID_COLUMNS", "8"))

# Synthetic escalation per column position (+2% of base price per column).
COLUMN_STEP = 0.02


def column_base_prices(base_price: float, column_count: int) -> tuple[float, ...]:
    base = float(base_price or 0)
    return tuple(base + base * (col * COLUMN_STEP) for col in range(1, column_count + 1))


def generate_grid(
    stay_types: Iterable[StayType],
    meal_plans: Sequence[MealPlan],
    guest_types: Sequence[GuestType],
    column_count: int = PRICING_GRID_COLUMNS,
) -> list[PricingRow]:
    """
    Expand catalog entities into pricing rows.

    One row per (stay type, meal plan, guest type), outer to inner in that
    order, each source list kept in its given order.
    """
    if column_count < 1:
        raise ValueError("column_count must be >= 1")

    rows: list[PricingRow] = []
    for st in stay_types:
        prices = column_base_prices(st.base_price, column_count)
        for mp in meal_plans:
            for gt in guest_types:
                rows.append(
                    PricingRow(
                        stay_type_id=st.id,
                        stay_type_name=st.name,
                        meal_plan_code=mp.code,
                        meal_plan_name=mp.name,
                        guest_type_code=gt.code,
                        guest_type_name=gt.name,
                        guest_type_icon=gt.icon,
                        base_prices=prices,
                    )
                )
    return rows


def resolve_channel(channels: Sequence[Channel], selected_channel_id: str | None, tab_key: str | None) -> Channel | None:
    """The explicitly selected channel, else the first channel of the active tab."""
    if selected_channel_id:
        for ch in channels:
            if ch.id == selected_channel_id:
                return ch
    if tab_key:
        matches = channels_for_tab(channels, tab_key)
        if matches:
            return matches[0]
    return None


def calculate_price(
    base_price: float,
    meal_plan_code: str,
    params: AdjustmentParameters | None = None,
    channel: Channel | None = None,
    *,
    meal_plans: Sequence[MealPlan] = DEFAULT_MEAL_PLANS,
) -> float:
    """
    Final sellable price for one grid cell.

    Steps run in order, each on the running value:
    1. meal plan addon
    2. custom percent, or preset percent when no custom percent is set
    3. fixed amount (only for the "Amount" adjustment kind)
    4. target column (highlight only, no numeric effect)
    5. channel modifier
    """
    p = params or AdjustmentParameters()
    working = float(base_price)

    for mp in meal_plans:
        if mp.code == meal_plan_code:
            working += mp.addon
            break

    # A set custom percent shadows the preset even when it does not parse.
    if is_set(p.custom_percent):
        pct = to_number(p.custom_percent)
    else:
        pct = to_number(p.preset_percent)
    if pct is not None:
        working = working * (1 + pct / 100)

    if p.adjustment_kind == "Amount":
        amt = to_number(p.fixed_amount)
        if amt is not None:
            working += amt

    # p.target_column only marks the previewed column.

    if channel is not None and channel.price_modifier_percent:
        working = working * (1 + channel.price_modifier_percent / 100)

    return working
