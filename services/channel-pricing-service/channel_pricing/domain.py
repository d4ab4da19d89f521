from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal, Union

ChannelStatus = Literal["active", "inactive"]
AdjustmentKind = Literal["Percentage", "Amount"]
Operation = Literal["increase", "decrease", "reset"]
BatchKind = Literal["percentage", "fixed"]
FeedbackKind = Literal["success", "error"]

# Raw user input: numbers, or strings as typed into a form ("" means not set).
NumberInput = Union[float, int, str, None]


@dataclass(frozen=True)
class StayType:
    id: str
    name: str
    base_price: float = 0.0


@dataclass(frozen=True)
class MealPlan:
    """
    Meal plan attached to every stay type row of the grid.

    Interpretation:
    - per_room_rate takes precedence over per_person_rate
    - absence of both is a zero addon
    """

    id: str
    code: str
    name: str
    per_room_rate: float | None = None
    per_person_rate: float | None = None

    @property
    def addon(self) -> float:
        if self.per_room_rate is not None:
            return float(self.per_room_rate)
        if self.per_person_rate is not None:
            return float(self.per_person_rate)
        return 0.0


@dataclass(frozen=True)
class GuestType:
    code: str
    name: str
    icon: str


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    type: str
    # None for legacy records that predate channel-type tabs.
    tab_key: str | None = None
    price_modifier_percent: float = 0.0
    status: ChannelStatus = "active"


@dataclass(frozen=True)
class ChannelTypeTab:
    key: str
    label: str
    is_built_in: bool = False


@dataclass(frozen=True)
class PricingRow:
    stay_type_id: str
    stay_type_name: str
    meal_plan_code: str
    meal_plan_name: str
    guest_type_code: str
    guest_type_name: str
    guest_type_icon: str
    base_prices: tuple[float, ...]


@dataclass(frozen=True)
class AdjustmentParameters:
    """Preview adjustment staged by a user before "Apply". Never persisted."""

    preset_percent: NumberInput = None
    custom_percent: NumberInput = None
    fixed_amount: NumberInput = None
    # 1-based grid column being previewed.
    target_column: int | None = None
    adjustment_kind: AdjustmentKind = "Percentage"


@dataclass(frozen=True)
class ImpactSummary:
    affected_combinations: int
    affected_columns: int
    total_cells: int


@dataclass(frozen=True)
class Feedback:
    kind: FeedbackKind
    message: str
    code: str | None = None

    @classmethod
    def success(cls, message: str) -> "Feedback":
        return cls(kind="success", message=message)

    @classmethod
    def error(cls, exc: "PricingError") -> "Feedback":
        return cls(kind="error", message=exc.message, code=exc.code)


# Batch adjustment scopes.


@dataclass(frozen=True)
class SingleChannel:
    channel_id: str | None


@dataclass(frozen=True)
class AllChannelsOfType:
    tab_key: str


@dataclass(frozen=True)
class SelectedChannels:
    channel_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class AllChannels:
    pass


Scope = Union[SingleChannel, AllChannelsOfType, SelectedChannels, AllChannels]


@dataclass(frozen=True)
class BatchAdjustmentRequest:
    scope: Scope
    operation: Operation = "increase"
    kind: BatchKind = "percentage"
    value: NumberInput = None
    currency: str = "LKR"


@dataclass(frozen=True)
class BatchResult:
    updated_channels: list[Channel] = field(default_factory=list)
    message: str = ""
    scope_description: str = ""
    delta_percent: float = 0.0


GUEST_TYPES: tuple[GuestType, ...] = (
    GuestType(code="AO", name="Adult Only", icon="👤"),
    GuestType(code="AC", name="Adult + Child", icon="👨‍👧"),
)

BUILT_IN_TABS: tuple[ChannelTypeTab, ...] = (
    ChannelTypeTab(key="DIRECT", label="DIRECT", is_built_in=True),
    ChannelTypeTab(key="WEB", label="WEB", is_built_in=True),
    ChannelTypeTab(key="OTA", label="OTA", is_built_in=True),
    ChannelTypeTab(key="TA", label="TA", is_built_in=True),
)

# Used when the catalog has no meal plans configured.
DEFAULT_MEAL_PLANS: tuple[MealPlan, ...] = (
    MealPlan(id="mp-bb", code="BB", name="Bed & Breakfast", per_person_rate=0),
    MealPlan(id="mp-hb", code="HB", name="Half Board", per_person_rate=0),
    MealPlan(id="mp-fb", code="FB", name="Full Board", per_person_rate=0),
    MealPlan(id="mp-ro", code="RO", name="Room Only", per_person_rate=0),
)


class PricingError(ValueError):
    """Recoverable, user-facing validation failure. Never leaves partial state behind."""

    code = "PricingError"
    default_message = "Invalid pricing request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoAdjustmentSelected(PricingError):
    code = "NoAdjustmentSelected"
    default_message = "Please select at least one pricing adjustment to apply."


class InvalidNumber(PricingError):
    code = "InvalidNumber"
    default_message = "Custom percentage must be a valid number."


class OutOfRange(PricingError):
    code = "OutOfRange"
    default_message = "Custom percentage must be between -100% and 100%."


class EmptySelection(PricingError):
    code = "EmptySelection"
    default_message = "Please select at least one sub-channel."


class NoChannelSelected(PricingError):
    code = "NoChannelSelected"
    default_message = "Please select a sub-channel first."


class InvalidPercentage(PricingError):
    code = "InvalidPercentage"
    default_message = "Please enter a valid percentage value."


class InvalidAmount(PricingError):
    code = "InvalidAmount"
    default_message = "Please enter a valid amount."


class DuplicateTab(PricingError):
    code = "DuplicateTab"
    default_message = "Channel type already exists."


class DuplicateMealPlan(PricingError):
    code = "DuplicateMealPlan"
    default_message = "Meal plan already exists."


class EmptyName(PricingError):
    code = "EmptyName"
    default_message = "Please enter a name."


class ChannelNotFound(PricingError):
    code = "ChannelNotFound"
    default_message = "Channel not found"


class StayTypeNotFound(PricingError):
    code = "StayTypeNotFound"
    default_message = "Stay type not found"


class TabNotFound(PricingError):
    code = "TabNotFound"
    default_message = "Channel type not found"


class BuiltInTab(PricingError):
    code = "BuiltInTab"
    default_message = "Built-in channel types cannot be changed."


class GridLocked(PricingError):
    code = "GridLocked"
    default_message = "Prices are locked. Unlock the grid to adjust channel modifiers."


def to_number(value: NumberInput) -> float | None:
    """Parse user input into a float. Unset, non-numeric or non-finite input gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
    else:
        s = value.strip()
        if not s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
    if not math.isfinite(f):
        return None
    return f


def is_set(value: NumberInput) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True
