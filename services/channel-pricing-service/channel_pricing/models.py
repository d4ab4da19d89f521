from __future__ import annotations

from sqlalchemy import Boolean, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StayTypeRecord(Base):
    __tablename__ = "stay_types"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    # insertion order; grid rows follow it
    position: Mapped[int] = mapped_column(Integer, default=0)

    name: Mapped[str] = mapped_column(String)
    base_price: Mapped[float] = mapped_column(Float, default=0.0)


class MealPlanRecord(Base):
    __tablename__ = "meal_plans"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_meal_plans_company_code"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    code: Mapped[str] = mapped_column(String)  # BB|HB|FB|RO|AI (or custom)
    name: Mapped[str] = mapped_column(String)
    per_room_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    per_person_rate: Mapped[float | None] = mapped_column(Float, nullable=True)


class ChannelRecord(Base):
    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    name: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String, default="")  # Direct|OTA|Agent|Walk-in|Travel Agent (or blank)
    tab_key: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    price_modifier_percent: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String, default="active")  # active|inactive


class ChannelTabRecord(Base):
    __tablename__ = "channel_tabs"
    __table_args__ = (UniqueConstraint("company_id", "key", name="uq_channel_tabs_company_key"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    key: Mapped[str] = mapped_column(String)
    label: Mapped[str] = mapped_column(String)
    is_built_in: Mapped[bool] = mapped_column(Boolean, default=False)
