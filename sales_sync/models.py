from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ID_TYPE = BigInteger().with_variant(Integer(), "sqlite")
AMOUNT_TYPE = Numeric(15, 2)


class Base(DeclarativeBase):
    pass


class Store(Base):
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    store_code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class DailySale(Base):
    __tablename__ = "daily_sales"
    __table_args__ = (
        UniqueConstraint("store_id", "sale_date", name="uq_daily_sales_store_date"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("stores.id"), nullable=False)
    store_code: Mapped[str] = mapped_column(String(10), nullable=False)
    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    danfe: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    pdv: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    exchange: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class MonthlySale(Base):
    __tablename__ = "monthly_sales"
    __table_args__ = (
        UniqueConstraint("store_id", "year_month", name="uq_monthly_sales_store_month"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("stores.id"), nullable=False)
    store_code: Mapped[str] = mapped_column(String(10), nullable=False)
    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    total: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class YearlySale(Base):
    __tablename__ = "yearly_sales"
    __table_args__ = (
        UniqueConstraint("store_id", "year", name="uq_yearly_sales_store_year"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("stores.id"), nullable=False)
    store_code: Mapped[str] = mapped_column(String(10), nullable=False)
    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
