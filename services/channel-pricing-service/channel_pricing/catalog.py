from __future__ import annotations

import dataclasses
import logging
from uuid import uuid4

from . import domain
from .store import CatalogStore, Command

logger = logging.getLogger(__name__)


class Catalog:
    """
    Read view over stay types, meal plans and guest types.

    Stay type writes go through here so they are validated before being sent
    to the store. Grid rows are never stored, so deleting a stay type drops
    its rows from the next grid without further work.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def stay_types(self) -> list[domain.StayType]:
        return self.store.stay_types()

    def meal_plans(self) -> list[domain.MealPlan]:
        plans = self.store.meal_plans()
        return plans if plans else list(domain.DEFAULT_MEAL_PLANS)

    def guest_types(self) -> list[domain.GuestType]:
        return list(domain.GUEST_TYPES)

    def get_stay_type(self, stay_type_id: str) -> domain.StayType:
        for st in self.store.stay_types():
            if st.id == stay_type_id:
                return st
        raise domain.StayTypeNotFound()

    def add_stay_type(self, name: str, base_price: float | str | None) -> domain.StayType:
        clean = (name or "").strip()
        if not clean:
            raise domain.EmptyName("Please enter a stay type name")
        st = domain.StayType(id=str(uuid4()), name=clean, base_price=domain.to_number(base_price) or 0.0)
        self.store.dispatch(Command(type="ADD_ROOM_TYPE", payload=st))
        logger.info("Stay type added (id=%s)", st.id)
        return st

    def update_stay_type(
        self, stay_type_id: str, name: str | None = None, base_price: float | str | None = None
    ) -> domain.StayType:
        old = self.get_stay_type(stay_type_id)
        changes: dict = {}
        if name is not None:
            clean = name.strip()
            if not clean:
                raise domain.EmptyName("Please enter a stay type name")
            changes["name"] = clean
        if base_price is not None:
            changes["base_price"] = domain.to_number(base_price) or 0.0
        updated = dataclasses.replace(old, **changes)
        self.store.dispatch(Command(type="UPDATE_ROOM_TYPE", payload=updated))
        return updated

    def delete_stay_type(self, stay_type_id: str) -> domain.StayType:
        old = self.get_stay_type(stay_type_id)
        self.store.dispatch(Command(type="DELETE_ROOM_TYPE", payload=stay_type_id))
        logger.info("Stay type deleted (id=%s)", stay_type_id)
        return old

    def add_meal_plan(
        self,
        code: str,
        name: str,
        per_room_rate: float | None = None,
        per_person_rate: float | None = None,
    ) -> domain.MealPlan:
        code_n = (code or "").strip().upper()
        if not code_n or not (name or "").strip():
            raise domain.EmptyName("Meal plan code and name are required")
        if any(mp.code == code_n for mp in self.store.meal_plans()):
            raise domain.DuplicateMealPlan(f"Meal plan {code_n} already exists.")
        mp = domain.MealPlan(
            id=str(uuid4()),
            code=code_n,
            name=name.strip(),
            per_room_rate=per_room_rate,
            per_person_rate=per_person_rate,
        )
        self.store.dispatch(Command(type="ADD_MEAL_PLAN", payload=mp))
        return mp
