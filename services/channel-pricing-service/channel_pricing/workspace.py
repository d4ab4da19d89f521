from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.engine import Engine

from . import domain
from .batch import BatchAdjustmentEngine
from .catalog import Catalog
from .formatters import PRICING_DEFAULT_CURRENCY, normalize_currency
from .grid import PRICING_GRID_COLUMNS, calculate_price, generate_grid, resolve_channel
from .registry import ChannelRegistry, ChannelSelection
from .session import AdjustmentSession
from .store import CatalogStore

DEFAULT_TAB = "DIRECT"


@dataclass
class GridCell:
    column: int
    base_price: float
    final_price: float
    highlighted: bool


@dataclass
class GridView:
    tab_key: str
    channel: domain.Channel | None
    currency: str
    columns: list[int]
    rows: list[tuple[domain.PricingRow, list[GridCell]]] = field(default_factory=list)


class PricingWorkspace:
    """
    One company's channel pricing grid: catalog, channels, and the UI state
    (active tab, selected channels, staged preview, lock) around them.
    """

    def __init__(self, store: CatalogStore, column_count: int = PRICING_GRID_COLUMNS):
        self.store = store
        self.column_count = column_count
        self.catalog = Catalog(store)
        self.registry = ChannelRegistry(store, ChannelSelection())
        self.session = AdjustmentSession()
        self.batch = BatchAdjustmentEngine(self.registry)
        self.active_tab = DEFAULT_TAB
        self.locked = False
        self.currency = normalize_currency(PRICING_DEFAULT_CURRENCY)

    @classmethod
    def open(cls, engine: Engine, company_id: str, column_count: int = PRICING_GRID_COLUMNS) -> "PricingWorkspace":
        return cls(CatalogStore(engine, company_id), column_count=column_count)

    @property
    def selection(self) -> ChannelSelection:
        return self.registry.selection

    def select_tab(self, tab_key: str) -> None:
        if self.registry.get_tab(tab_key) is None:
            raise domain.TabNotFound()
        if tab_key != self.active_tab:
            self.active_tab = tab_key
            self.selection.selected_channel_id = None

    def select_channel(self, channel_id: str | None) -> None:
        if channel_id:
            self.registry.require(channel_id)
        self.selection.selected_channel_id = channel_id or None

    def rename_tab(self, tab_key: str, label: str) -> str:
        new_key = self.registry.rename_tab(tab_key, label)
        if self.active_tab == tab_key:
            self.active_tab = new_key
        return new_key

    def remove_tab(self, tab_key: str) -> domain.ChannelTypeTab:
        tab = self.registry.remove_tab(tab_key)
        if self.active_tab == tab_key:
            self.active_tab = DEFAULT_TAB
            self.selection.selected_channel_id = None
        return tab

    def rows(self) -> list[domain.PricingRow]:
        return generate_grid(
            self.catalog.stay_types(),
            self.catalog.meal_plans(),
            self.catalog.guest_types(),
            self.column_count,
        )

    def active_channel(self) -> domain.Channel | None:
        return resolve_channel(self.registry.channels(), self.selection.selected_channel_id, self.active_tab)

    def grid(self) -> GridView:
        meal_plans = self.catalog.meal_plans()
        channel = self.active_channel()
        params = self.session.params
        view = GridView(
            tab_key=self.active_tab,
            channel=channel,
            currency=self.currency,
            columns=list(range(1, self.column_count + 1)),
        )
        for row in self.rows():
            cells = []
            for idx, base in enumerate(row.base_prices):
                col = idx + 1
                cells.append(
                    GridCell(
                        column=col,
                        base_price=base,
                        final_price=calculate_price(base, row.meal_plan_code, params, channel, meal_plans=meal_plans),
                        highlighted=bool(params.target_column) and params.target_column == col,
                    )
                )
            view.rows.append((row, cells))
        return view

    def apply_session(self) -> tuple[domain.ImpactSummary, domain.Feedback]:
        return self.session.apply(len(self.rows()), self.column_count, self.active_tab)

    def run_batch(self, request: domain.BatchAdjustmentRequest) -> domain.BatchResult:
        return self.batch.run(request, locked=self.locked)
