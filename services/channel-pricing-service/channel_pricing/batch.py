from __future__ import annotations

import dataclasses
import logging
import os
import threading
from typing import Sequence

from . import domain
from .formatters import format_currency
from .registry import ChannelRegistry
from .store import Command

logger = logging.getLogger(__name__)

# Approximate average base price used to turn a fixed amount into a modifier
# percentage. Not derived from the catalog.
PRICING_REFERENCE_BASE_PRICE = float(os.getenv("PRICING_REFERENCE_BASE_PRICE", "10000"))

_BATCH_LOCK = threading.Lock()


def _channels_text(n: int) -> str:
    return f"{n} channel{'' if n == 1 else 's'} affected"


def _clean_value(operation: domain.Operation, kind: domain.BatchKind, value: domain.NumberInput) -> float:
    if operation == "reset":
        return 0.0
    v = domain.to_number(value)
    if v is None or v == 0:
        if kind == "percentage":
            raise domain.InvalidPercentage()
        raise domain.InvalidAmount()
    return v


def signed_delta(operation: domain.Operation, value: float) -> float:
    if operation == "reset":
        return 0.0
    return -abs(value) if operation == "decrease" else abs(value)


def fixed_to_percent(amount: float, reference_price: float = PRICING_REFERENCE_BASE_PRICE) -> float:
    return (amount / reference_price) * 100


class BatchAdjustmentEngine:
    """
    The only path that durably changes channel price modifiers.

    Requests are fully validated and resolved before the first write; the
    writes for one batch then land in a single store transaction.
    """

    def __init__(self, registry: ChannelRegistry, reference_price: float = PRICING_REFERENCE_BASE_PRICE):
        self.registry = registry
        self.reference_price = reference_price

    def resolve_scope(self, scope: domain.Scope) -> list[str]:
        if isinstance(scope, domain.AllChannels):
            return [ch.id for ch in self.registry.channels()]
        if isinstance(scope, domain.AllChannelsOfType):
            return [ch.id for ch in self.registry.group_by_tab(scope.tab_key)]
        if isinstance(scope, domain.SelectedChannels):
            if not scope.channel_ids:
                raise domain.EmptySelection()
            return list(scope.channel_ids)
        if isinstance(scope, domain.SingleChannel):
            if not scope.channel_id:
                raise domain.NoChannelSelected()
            self.registry.require(scope.channel_id)
            return [scope.channel_id]
        raise TypeError(f"Unsupported scope: {scope!r}")

    def describe_scope(self, scope: domain.Scope, channel_ids: Sequence[str]) -> str:
        if isinstance(scope, domain.AllChannels):
            return "all channels across all types"
        if isinstance(scope, domain.AllChannelsOfType):
            return f"all {scope.tab_key} sub-channels"
        if isinstance(scope, domain.SelectedChannels):
            n = len(channel_ids)
            return f"{n} selected sub-channel{'' if n == 1 else 's'}"
        ch = self.registry.get(channel_ids[0]) if channel_ids else None
        return ch.name if ch else ""

    def apply_delta(
        self,
        channel_ids: Sequence[str],
        operation: domain.Operation,
        kind: domain.BatchKind,
        value: domain.NumberInput,
        *,
        scope_description: str = "",
        currency: str = "LKR",
    ) -> domain.BatchResult:
        v = _clean_value(operation, kind, value)
        delta = signed_delta(operation, v)
        wanted = set(channel_ids)

        with _BATCH_LOCK:
            current = [ch for ch in self.registry.channels() if ch.id in wanted]
            delta_percent = delta if kind == "percentage" else fixed_to_percent(delta, self.reference_price)
            updated: list[domain.Channel] = []
            for ch in current:
                modifier = 0.0 if operation == "reset" else ch.price_modifier_percent + delta_percent
                updated.append(dataclasses.replace(ch, price_modifier_percent=modifier))

            if updated:
                self.registry.store.dispatch_all(Command(type="UPDATE_CHANNEL", payload=ch) for ch in updated)

        n = len(updated)
        if operation == "reset":
            message = f"Successfully reset price modifiers to 0% for {scope_description} ({_channels_text(n)})"
        else:
            magnitude = abs(delta)
            value_text = f"{magnitude:g}%" if kind == "percentage" else format_currency(magnitude, currency)
            verb = "increased" if operation == "increase" else "decreased"
            message = f"Successfully {verb} prices by {value_text} for {scope_description} ({_channels_text(n)})"

        logger.info(
            "Batch adjustment applied (operation=%s, kind=%s, delta=%s, channels=%d)",
            operation,
            kind,
            delta,
            n,
        )
        return domain.BatchResult(
            updated_channels=updated,
            message=message,
            scope_description=scope_description,
            delta_percent=delta_percent,
        )

    def run(self, request: domain.BatchAdjustmentRequest, *, locked: bool = False) -> domain.BatchResult:
        if locked:
            raise domain.GridLocked()
        # Value errors take priority over scope errors.
        _clean_value(request.operation, request.kind, request.value)
        channel_ids = self.resolve_scope(request.scope)
        result = self.apply_delta(
            channel_ids,
            request.operation,
            request.kind,
            request.value,
            scope_description=self.describe_scope(request.scope, channel_ids),
            currency=request.currency,
        )
        self.registry.selection.clear()
        return result
