from __future__ import annotations

import dataclasses

from .domain import (
    AdjustmentParameters,
    Feedback,
    ImpactSummary,
    InvalidNumber,
    NoAdjustmentSelected,
    OutOfRange,
    is_set,
    to_number,
)

# Quick actions offered next to the grid.
PRESETS: dict[str, dict] = {
    "increase_10": {"preset_percent": "10", "adjustment_kind": "Percentage"},
    "decrease_10": {"preset_percent": "-10", "adjustment_kind": "Percentage"},
    "peak_20": {"preset_percent": "20", "adjustment_kind": "Percentage"},
    "fixed_500": {"fixed_amount": "500", "adjustment_kind": "Amount"},
}

CUSTOM_PERCENT_MIN = -100.0
CUSTOM_PERCENT_MAX = 100.0


def _plural(n: int, word: str) -> str:
    return word if n == 1 else f"{word}s"


class AdjustmentSession:
    """
    Preview adjustment being staged in the grid.

    Nothing here writes to the channel registry: "apply" only validates and
    reports the impact. Durable changes go through the batch engine.
    """

    def __init__(self, params: AdjustmentParameters | None = None):
        self.params = params or AdjustmentParameters()

    def stage(self, **changes) -> AdjustmentParameters:
        self.params = dataclasses.replace(self.params, **changes)
        return self.params

    def apply_preset(self, name: str) -> AdjustmentParameters:
        try:
            changes = PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown preset: {name}")
        return self.stage(**changes)

    def has_change(self) -> bool:
        p = self.params
        return (
            is_set(p.custom_percent)
            or is_set(p.preset_percent)
            or is_set(p.fixed_amount)
            or bool(p.target_column)
        )

    def validate(self, row_count: int, column_count: int) -> ImpactSummary:
        if not self.has_change():
            raise NoAdjustmentSelected()

        if is_set(self.params.custom_percent):
            value = to_number(self.params.custom_percent)
            if value is None:
                raise InvalidNumber()
            if value < CUSTOM_PERCENT_MIN or value > CUSTOM_PERCENT_MAX:
                raise OutOfRange()

        affected_columns = 1 if self.params.target_column else column_count
        return ImpactSummary(
            affected_combinations=row_count,
            affected_columns=affected_columns,
            total_cells=row_count * affected_columns,
        )

    def apply(self, row_count: int, column_count: int, tab_label: str) -> tuple[ImpactSummary, Feedback]:
        impact = self.validate(row_count, column_count)
        cells = impact.total_cells
        combos = impact.affected_combinations
        message = (
            f"Applied to {cells} price {_plural(cells, 'cell')} across "
            f"{combos} {_plural(combos, 'combination')} for {tab_label} channel."
        )
        # TODO: persist the previewed adjustment once product decides whether it
        # should write channel modifiers like the batch adjustment does.
        return impact, Feedback.success(message)

    def cancel(self) -> None:
        self.params = AdjustmentParameters()
