"""Restaurant-related ORM models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from canteen_engine.db.base import Base


class Restaurant(Base):
    """Represents a canteen restaurant."""

    __tablename__ = "restaurants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    opening_hours: Mapped[list["RestaurantOpeningHours"]] = relationship(
        back_populates="restaurant",
        cascade="all, delete-orphan",
        order_by="RestaurantOpeningHours.weekday",
    )
    penalty_settings: Mapped["PenaltySettings | None"] = relationship(
        back_populates="restaurant",
        uselist=False,
        cascade="all, delete-orphan",
    )


class RestaurantOpeningHours(Base):
    """Opening hours for one weekday; weekday 0 is Sunday."""

    __tablename__ = "restaurant_opening_hours"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "weekday", name="uq_opening_hours_restaurant_weekday"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)

    restaurant: Mapped[Restaurant] = relationship(back_populates="opening_hours")


class PenaltySettings(Base):
    """Late-cancellation and negative-balance policy of a restaurant."""

    __tablename__ = "penalty_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    penalty_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    time_threshold_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allow_negative_balance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    restaurant: Mapped[Restaurant] = relationship(back_populates="penalty_settings")
