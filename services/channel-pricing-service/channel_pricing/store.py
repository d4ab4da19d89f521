from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Literal
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from . import domain
from .db import session
from .models import ChannelRecord, ChannelTabRecord, MealPlanRecord, StayTypeRecord

logger = logging.getLogger(__name__)

CommandType = Literal[
    "ADD_ROOM_TYPE",
    "UPDATE_ROOM_TYPE",
    "DELETE_ROOM_TYPE",
    "ADD_MEAL_PLAN",
    "ADD_CHANNEL",
    "UPDATE_CHANNEL",
    "DELETE_CHANNEL",
    "ADD_TAB",
    "UPDATE_TAB",
    "DELETE_TAB",
]


@dataclass(frozen=True)
class Command:
    """
    A write request against the catalog / channel store.

    payload is the full replacement record for ADD_* / UPDATE_*, or the id
    (tab key for tabs) for DELETE_*. UPDATE_TAB additionally names the key
    being replaced in `key`.
    """

    type: CommandType
    payload: Any
    key: str | None = None


def _stay_type(r: StayTypeRecord) -> domain.StayType:
    return domain.StayType(id=r.id, name=r.name, base_price=float(r.base_price or 0))


def _meal_plan(r: MealPlanRecord) -> domain.MealPlan:
    return domain.MealPlan(
        id=r.id,
        code=r.code,
        name=r.name,
        per_room_rate=r.per_room_rate,
        per_person_rate=r.per_person_rate,
    )


def _channel(r: ChannelRecord) -> domain.Channel:
    return domain.Channel(
        id=r.id,
        name=r.name,
        type=r.type or "",
        tab_key=r.tab_key,
        price_modifier_percent=float(r.price_modifier_percent or 0),
        status=r.status or "active",
    )


def _tab(r: ChannelTabRecord) -> domain.ChannelTypeTab:
    return domain.ChannelTypeTab(key=r.key, label=r.label, is_built_in=bool(r.is_built_in))


class CatalogStore:
    """
    System of record for one company's stay types, meal plans, channels and
    channel-type tabs.

    Reads always hit the database; nothing is cached here.
    """

    def __init__(self, engine: Engine, company_id: str):
        self.engine = engine
        self.company_id = company_id
        self._ensure_built_in_tabs()

    def _ensure_built_in_tabs(self) -> None:
        with session(self.engine) as s:
            existing = {
                k
                for (k,) in s.query(ChannelTabRecord.key).filter(ChannelTabRecord.company_id == self.company_id).all()
            }
            for pos, tab in enumerate(domain.BUILT_IN_TABS):
                if tab.key in existing:
                    continue
                s.add(
                    ChannelTabRecord(
                        id=str(uuid4()),
                        company_id=self.company_id,
                        position=pos,
                        key=tab.key,
                        label=tab.label,
                        is_built_in=True,
                    )
                )
            s.commit()

    # reads

    def stay_types(self) -> list[domain.StayType]:
        with session(self.engine) as s:
            rows = (
                s.query(StayTypeRecord)
                .filter(StayTypeRecord.company_id == self.company_id)
                .order_by(StayTypeRecord.position)
                .all()
            )
            return [_stay_type(r) for r in rows]

    def meal_plans(self) -> list[domain.MealPlan]:
        with session(self.engine) as s:
            rows = (
                s.query(MealPlanRecord)
                .filter(MealPlanRecord.company_id == self.company_id)
                .order_by(MealPlanRecord.position)
                .all()
            )
            return [_meal_plan(r) for r in rows]

    def channels(self) -> list[domain.Channel]:
        with session(self.engine) as s:
            rows = (
                s.query(ChannelRecord)
                .filter(ChannelRecord.company_id == self.company_id)
                .order_by(ChannelRecord.position)
                .all()
            )
            return [_channel(r) for r in rows]

    def tabs(self) -> list[domain.ChannelTypeTab]:
        with session(self.engine) as s:
            rows = (
                s.query(ChannelTabRecord)
                .filter(ChannelTabRecord.company_id == self.company_id)
                .order_by(ChannelTabRecord.position)
                .all()
            )
            return [_tab(r) for r in rows]

    # writes

    def dispatch(self, command: Command) -> None:
        self.dispatch_all([command])

    def dispatch_all(self, commands: Iterable[Command]) -> None:
        """Apply commands in a single transaction: all of them land, or none."""
        commands = list(commands)
        with session(self.engine) as s:
            try:
                for cmd in commands:
                    self._apply(s, cmd)
                s.commit()
            except Exception:
                s.rollback()
                raise
        logger.debug("Applied %d store command(s) for company %s", len(commands), self.company_id)

    def _next_position(self, s: Session, model) -> int:
        cur = s.query(func.max(model.position)).filter(model.company_id == self.company_id).scalar()
        return 0 if cur is None else int(cur) + 1

    def _get(self, s: Session, model, record_id: str):
        r = s.get(model, record_id)
        if r is None or r.company_id != self.company_id:
            return None
        return r

    def _get_tab(self, s: Session, key: str) -> ChannelTabRecord | None:
        return (
            s.query(ChannelTabRecord)
            .filter(ChannelTabRecord.company_id == self.company_id)
            .filter(ChannelTabRecord.key == key)
            .first()
        )

    def _apply(self, s: Session, cmd: Command) -> None:
        t = cmd.type
        p = cmd.payload

        if t == "ADD_ROOM_TYPE":
            s.add(
                StayTypeRecord(
                    id=p.id,
                    company_id=self.company_id,
                    position=self._next_position(s, StayTypeRecord),
                    name=p.name,
                    base_price=float(p.base_price or 0),
                )
            )
        elif t == "UPDATE_ROOM_TYPE":
            r = self._get(s, StayTypeRecord, p.id)
            if r is None:
                raise domain.StayTypeNotFound()
            r.name = p.name
            r.base_price = float(p.base_price or 0)
        elif t == "DELETE_ROOM_TYPE":
            r = self._get(s, StayTypeRecord, p)
            if r is None:
                raise domain.StayTypeNotFound()
            s.delete(r)
        elif t == "ADD_MEAL_PLAN":
            s.add(
                MealPlanRecord(
                    id=p.id,
                    company_id=self.company_id,
                    position=self._next_position(s, MealPlanRecord),
                    code=p.code,
                    name=p.name,
                    per_room_rate=p.per_room_rate,
                    per_person_rate=p.per_person_rate,
                )
            )
        elif t == "ADD_CHANNEL":
            s.add(
                ChannelRecord(
                    id=p.id,
                    company_id=self.company_id,
                    position=self._next_position(s, ChannelRecord),
                    name=p.name,
                    type=p.type,
                    tab_key=p.tab_key,
                    price_modifier_percent=float(p.price_modifier_percent or 0),
                    status=p.status,
                )
            )
        elif t == "UPDATE_CHANNEL":
            r = self._get(s, ChannelRecord, p.id)
            if r is None:
                raise domain.ChannelNotFound()
            r.name = p.name
            r.type = p.type
            r.tab_key = p.tab_key
            r.price_modifier_percent = float(p.price_modifier_percent or 0)
            r.status = p.status
        elif t == "DELETE_CHANNEL":
            r = self._get(s, ChannelRecord, p)
            if r is None:
                raise domain.ChannelNotFound()
            s.delete(r)
        elif t == "ADD_TAB":
            s.add(
                ChannelTabRecord(
                    id=str(uuid4()),
                    company_id=self.company_id,
                    position=self._next_position(s, ChannelTabRecord),
                    key=p.key,
                    label=p.label,
                    is_built_in=bool(p.is_built_in),
                )
            )
        elif t == "UPDATE_TAB":
            r = self._get_tab(s, cmd.key or "")
            if r is None:
                raise domain.TabNotFound()
            r.key = p.key
            r.label = p.label
        elif t == "DELETE_TAB":
            r = self._get_tab(s, p)
            if r is None:
                raise domain.TabNotFound()
            s.delete(r)
        else:
            raise ValueError(f"Unknown store command: {t}")
