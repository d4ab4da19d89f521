from __future__ import annotations

import logging
import os
import threading
from functools import lru_cache
from typing import Annotated, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from . import domain, events
from .db import DATABASE_URL, make_engine
from .formatters import format_currency, normalize_currency
from .security import PRICING_EDITOR_ROLES, ensure_company_access, get_principal_optional, require_roles
from .workspace import PricingWorkspace

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.getLogger("channel_pricing").setLevel(LOG_LEVEL)

app = FastAPI(
    title="Channel Pricing Service",
    version="0.1.0",
    description="Channel pricing grid: per-channel price modifiers, preview adjustments and batch adjustments across sales channels.",
)

_WORKSPACES: dict[str, PricingWorkspace] = {}  # company_id -> workspace (UI state lives here, data in the store)
_WORKSPACES_LOCK = threading.Lock()

_editor = require_roles(*PRICING_EDITOR_ROLES)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return make_engine(DATABASE_URL)


def _company_key(x_company_id: str | None) -> str:
    return (x_company_id or "").strip() or "default"


def _workspace(company_id: str) -> PricingWorkspace:
    with _WORKSPACES_LOCK:
        ws = _WORKSPACES.get(company_id)
        if ws is None:
            ws = PricingWorkspace.open(get_engine(), company_id)
            _WORKSPACES[company_id] = ws
        return ws


def reader_workspace(
    x_company_id: Annotated[str | None, Header()] = None,
    principal=Depends(get_principal_optional),
) -> PricingWorkspace:
    company_id = _company_key(x_company_id)
    ensure_company_access(principal, company_id)
    return _workspace(company_id)


def editor_workspace(
    x_company_id: Annotated[str | None, Header()] = None,
    principal=Depends(_editor),
) -> PricingWorkspace:
    company_id = _company_key(x_company_id)
    ensure_company_access(principal, company_id)
    return _workspace(company_id)


Reader = Annotated[PricingWorkspace, Depends(reader_workspace)]
Editor = Annotated[PricingWorkspace, Depends(editor_workspace)]


@app.exception_handler(domain.PricingError)
async def _pricing_error(_request: Request, exc: domain.PricingError):
    status = 404 if exc.code.endswith("NotFound") else 400
    return JSONResponse(status_code=status, content={"kind": "error", "code": exc.code, "message": exc.message})


# --- schemas ---


class FeedbackOut(BaseModel):
    kind: Literal["success", "error"]
    message: str


class StayTypeIn(BaseModel):
    name: str = Field(min_length=1)
    base_price: float = 0.0


class StayTypePatch(BaseModel):
    name: str | None = None
    base_price: float | None = None


class StayTypeOut(BaseModel):
    id: str
    name: str
    base_price: float


class MealPlanIn(BaseModel):
    code: str = Field(min_length=1, description="Short unique tag, e.g. BB, HB")
    name: str = Field(min_length=1)
    per_room_rate: float | None = None
    per_person_rate: float | None = None


class MealPlanOut(BaseModel):
    id: str
    code: str
    name: str
    per_room_rate: float | None
    per_person_rate: float | None


class TabIn(BaseModel):
    label: str


class TabOut(BaseModel):
    key: str
    label: str
    is_built_in: bool


class ChannelIn(BaseModel):
    name: str
    tab_key: str | None = Field(default=None, description="Defaults to the active tab")


class ChannelPatch(BaseModel):
    name: str | None = None
    tab_key: str | None = None


class ChannelOut(BaseModel):
    id: str
    name: str
    type: str
    tab_key: str | None
    price_modifier_percent: float
    status: str


class SelectionIn(BaseModel):
    tab_key: str | None = None
    channel_id: str | None = None
    currency: str | None = None


class SelectionOut(BaseModel):
    tab_key: str
    selected_channel_id: str | None
    selected_channel_ids: list[str]
    currency: str
    locked: bool


class LockIn(BaseModel):
    locked: bool


class SessionIn(BaseModel):
    preset_percent: float | str | None = None
    custom_percent: float | str | None = None
    fixed_amount: float | str | None = None
    target_column: int | None = Field(default=None, ge=1)
    adjustment_kind: Literal["Percentage", "Amount"] | None = None


class SessionOut(BaseModel):
    preset_percent: float | str | None
    custom_percent: float | str | None
    fixed_amount: float | str | None
    target_column: int | None
    adjustment_kind: str


class ImpactOut(BaseModel):
    affected_combinations: int
    affected_columns: int
    total_cells: int


class ApplyOut(FeedbackOut):
    impact: ImpactOut


class CellOut(BaseModel):
    column: int
    base_price: float
    final_price: float
    base_display: str
    final_display: str
    highlighted: bool


class RowOut(BaseModel):
    stay_type_id: str
    stay_type_name: str
    meal_plan_code: str
    meal_plan_name: str
    guest_type_code: str
    guest_type_name: str
    guest_type_icon: str
    cells: list[CellOut]


class GridOut(BaseModel):
    tab_key: str
    channel: ChannelOut | None
    currency: str
    columns: list[int]
    rows: list[RowOut]


class BatchIn(BaseModel):
    scope: Literal["single-subchannel", "all-subchannels", "selected-subchannels", "all-channels"] = "single-subchannel"
    operation: Literal["increase", "decrease", "reset"] = "increase"
    kind: Literal["percentage", "fixed"] = "percentage"
    value: float | str | None = None
    channel_id: str | None = Field(default=None, description="single-subchannel; defaults to the selected channel")
    channel_ids: list[str] | None = Field(default=None, description="selected-subchannels; defaults to the pending selection")
    tab_key: str | None = Field(default=None, description="all-subchannels; defaults to the active tab")
    currency: str | None = None


class BatchOut(FeedbackOut):
    updated_channels: list[ChannelOut]


def _channel_out(ch: domain.Channel) -> ChannelOut:
    return ChannelOut(
        id=ch.id,
        name=ch.name,
        type=ch.type,
        tab_key=ch.tab_key,
        price_modifier_percent=ch.price_modifier_percent,
        status=ch.status,
    )


def _selection_out(ws: PricingWorkspace) -> SelectionOut:
    return SelectionOut(
        tab_key=ws.active_tab,
        selected_channel_id=ws.selection.selected_channel_id,
        selected_channel_ids=list(ws.selection.selected_channel_ids),
        currency=ws.currency,
        locked=ws.locked,
    )


def _session_out(ws: PricingWorkspace) -> SessionOut:
    p = ws.session.params
    return SessionOut(
        preset_percent=p.preset_percent,
        custom_percent=p.custom_percent,
        fixed_amount=p.fixed_amount,
        target_column=p.target_column,
        adjustment_kind=p.adjustment_kind,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# --- catalog ---


@app.get("/stay-types", response_model=list[StayTypeOut])
def list_stay_types(ws: Reader):
    return [StayTypeOut(id=st.id, name=st.name, base_price=st.base_price) for st in ws.catalog.stay_types()]


@app.post("/stay-types", response_model=StayTypeOut)
def add_stay_type(payload: StayTypeIn, ws: Editor):
    st = ws.catalog.add_stay_type(payload.name, payload.base_price)
    return StayTypeOut(id=st.id, name=st.name, base_price=st.base_price)


@app.patch("/stay-types/{stay_type_id}", response_model=StayTypeOut)
def update_stay_type(stay_type_id: str, payload: StayTypePatch, ws: Editor):
    st = ws.catalog.update_stay_type(stay_type_id, name=payload.name, base_price=payload.base_price)
    return StayTypeOut(id=st.id, name=st.name, base_price=st.base_price)


@app.delete("/stay-types/{stay_type_id}", response_model=FeedbackOut)
def delete_stay_type(stay_type_id: str, ws: Editor):
    st = ws.catalog.delete_stay_type(stay_type_id)
    return FeedbackOut(kind="success", message=f'Stay type "{st.name}" deleted successfully!')


@app.get("/meal-plans", response_model=list[MealPlanOut])
def list_meal_plans(ws: Reader):
    return [MealPlanOut(**vars(mp)) for mp in ws.catalog.meal_plans()]


@app.post("/meal-plans", response_model=MealPlanOut)
def add_meal_plan(payload: MealPlanIn, ws: Editor):
    mp = ws.catalog.add_meal_plan(payload.code, payload.name, payload.per_room_rate, payload.per_person_rate)
    return MealPlanOut(**vars(mp))


# --- channel types ---


@app.get("/tabs", response_model=list[TabOut])
def list_tabs(ws: Reader):
    return [TabOut(key=t.key, label=t.label, is_built_in=t.is_built_in) for t in ws.registry.tabs()]


@app.post("/tabs", response_model=TabOut)
def add_tab(payload: TabIn, ws: Editor):
    key = ws.registry.add_tab(payload.label)
    return TabOut(key=key, label=key, is_built_in=False)


@app.patch("/tabs/{tab_key}", response_model=TabOut)
def rename_tab(tab_key: str, payload: TabIn, ws: Editor):
    key = ws.rename_tab(tab_key, payload.label)
    return TabOut(key=key, label=key, is_built_in=False)


@app.delete("/tabs/{tab_key}", response_model=FeedbackOut)
def remove_tab(tab_key: str, ws: Editor):
    tab = ws.remove_tab(tab_key)
    return FeedbackOut(kind="success", message=f'Channel type "{tab.label}" deleted')


# --- channels ---


@app.get("/channels", response_model=list[ChannelOut])
def list_channels(ws: Reader, tab: str | None = None):
    channels = ws.registry.group_by_tab(tab) if tab else ws.registry.channels()
    return [_channel_out(ch) for ch in channels]


@app.get("/channels/orphaned", response_model=list[ChannelOut])
def list_orphaned_channels(ws: Reader):
    return [_channel_out(ch) for ch in ws.registry.orphaned_channels()]


@app.post("/channels", response_model=ChannelOut)
async def create_channel(payload: ChannelIn, ws: Editor):
    ch = ws.registry.create(payload.name, payload.tab_key or ws.active_tab)
    await events.publish(events.CHANNEL_CREATED, events.channel_payload(ch), ws.store.company_id)
    return _channel_out(ch)


@app.patch("/channels/{channel_id}", response_model=ChannelOut)
async def update_channel(channel_id: str, payload: ChannelPatch, ws: Editor):
    ch = ws.registry.update(channel_id, name=payload.name, tab_key=payload.tab_key)
    await events.publish(events.CHANNEL_UPDATED, events.channel_payload(ch), ws.store.company_id)
    return _channel_out(ch)


@app.delete("/channels/{channel_id}", response_model=FeedbackOut)
async def delete_channel(channel_id: str, ws: Editor):
    ch = ws.registry.delete(channel_id)
    await events.publish(events.CHANNEL_DELETED, {"id": ch.id}, ws.store.company_id)
    return FeedbackOut(kind="success", message=f'Channel "{ch.name}" deleted successfully!')


# --- selection / lock ---


@app.get("/selection", response_model=SelectionOut)
def get_selection(ws: Reader):
    return _selection_out(ws)


@app.put("/selection", response_model=SelectionOut)
def update_selection(payload: SelectionIn, ws: Reader):
    if payload.currency is not None:
        try:
            ws.currency = normalize_currency(payload.currency)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if payload.tab_key is not None:
        ws.select_tab(payload.tab_key)
    if "channel_id" in payload.model_fields_set:
        ws.select_channel(payload.channel_id)
    return _selection_out(ws)


@app.post("/selection/channels/{channel_id}/toggle", response_model=SelectionOut)
def toggle_channel(channel_id: str, ws: Reader):
    ws.registry.require(channel_id)
    ws.selection.toggle(channel_id)
    return _selection_out(ws)


@app.post("/selection/select-all", response_model=SelectionOut)
def select_all_channels(ws: Reader):
    ws.selection.select_all([ch.id for ch in ws.registry.group_by_tab(ws.active_tab)])
    return _selection_out(ws)


@app.post("/selection/clear", response_model=SelectionOut)
def clear_selection(ws: Reader):
    ws.selection.clear()
    return _selection_out(ws)


@app.put("/lock", response_model=SelectionOut)
def set_lock(payload: LockIn, ws: Editor):
    ws.locked = payload.locked
    return _selection_out(ws)


# --- grid / preview session ---


@app.get("/grid", response_model=GridOut)
def get_grid(ws: Reader):
    view = ws.grid()
    rows: list[RowOut] = []
    for row, cells in view.rows:
        rows.append(
            RowOut(
                stay_type_id=row.stay_type_id,
                stay_type_name=row.stay_type_name,
                meal_plan_code=row.meal_plan_code,
                meal_plan_name=row.meal_plan_name,
                guest_type_code=row.guest_type_code,
                guest_type_name=row.guest_type_name,
                guest_type_icon=row.guest_type_icon,
                cells=[
                    CellOut(
                        column=c.column,
                        base_price=c.base_price,
                        final_price=c.final_price,
                        base_display=format_currency(c.base_price, view.currency),
                        final_display=format_currency(c.final_price, view.currency),
                        highlighted=c.highlighted,
                    )
                    for c in cells
                ],
            )
        )
    return GridOut(
        tab_key=view.tab_key,
        channel=_channel_out(view.channel) if view.channel else None,
        currency=view.currency,
        columns=view.columns,
        rows=rows,
    )


@app.get("/session", response_model=SessionOut)
def get_session(ws: Reader):
    return _session_out(ws)


@app.put("/session", response_model=SessionOut)
def stage_session(payload: SessionIn, ws: Reader):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("adjustment_kind") is None:
        changes.pop("adjustment_kind", None)
    target = changes.get("target_column")
    if target is not None and target > ws.column_count:
        raise HTTPException(status_code=400, detail=f"target_column must be between 1 and {ws.column_count}")
    ws.session.stage(**changes)
    return _session_out(ws)


@app.post("/session/presets/{name}", response_model=SessionOut)
def apply_preset(name: str, ws: Reader):
    try:
        ws.session.apply_preset(name)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _session_out(ws)


@app.post("/session/apply", response_model=ApplyOut)
def apply_session(ws: Reader):
    impact, fb = ws.apply_session()
    return ApplyOut(
        kind=fb.kind,
        message=fb.message,
        impact=ImpactOut(
            affected_combinations=impact.affected_combinations,
            affected_columns=impact.affected_columns,
            total_cells=impact.total_cells,
        ),
    )


@app.post("/session/cancel", response_model=SessionOut)
def cancel_session(ws: Reader):
    ws.session.cancel()
    return _session_out(ws)


# --- batch adjustments ---


def _scope(payload: BatchIn, ws: PricingWorkspace) -> domain.Scope:
    if payload.scope == "all-channels":
        return domain.AllChannels()
    if payload.scope == "all-subchannels":
        return domain.AllChannelsOfType(tab_key=payload.tab_key or ws.active_tab)
    if payload.scope == "selected-subchannels":
        ids = payload.channel_ids if payload.channel_ids is not None else ws.selection.selected_channel_ids
        return domain.SelectedChannels(channel_ids=tuple(ids))
    return domain.SingleChannel(channel_id=payload.channel_id or ws.selection.selected_channel_id)


@app.post("/batch-adjustments", response_model=BatchOut)
async def batch_adjust(payload: BatchIn, ws: Editor):
    try:
        currency = normalize_currency(payload.currency or ws.currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    req = domain.BatchAdjustmentRequest(
        scope=_scope(payload, ws),
        operation=payload.operation,
        kind=payload.kind,
        value=payload.value,
        currency=currency,
    )
    result = ws.run_batch(req)

    await events.publish(events.BATCH_APPLIED, events.batch_payload(req, result), ws.store.company_id)
    return BatchOut(
        kind="success",
        message=result.message,
        updated_channels=[_channel_out(ch) for ch in result.updated_channels],
    )
