from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class Currency(str, Enum):
    LRD = "LRD"
    USD = "USD"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    store: Mapped[str] = mapped_column(String(120), index=True, nullable=False)
    item: Mapped[str] = mapped_column(String(160), index=True, nullable=False)
    pieces: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_lrd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_lrd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    total_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    image: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def price_for(self, currency: Currency) -> Decimal | None:
        return self.price_lrd if currency == Currency.LRD else self.price_usd


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    store: Mapped[str] = mapped_column(String(120), index=True, nullable=False)
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType), index=True, nullable=False)
    currency: Mapped[Currency] = mapped_column(SQLEnum(Currency), nullable=False)
    total_lrd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    total_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    products_sold: Mapped[list["TransactionLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.position",
        lazy="selectin",
    )

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    def stored_total(self) -> Decimal | None:
        return self.total_lrd if self.currency == Currency.LRD else self.total_usd


class TransactionLine(Base):
    __tablename__ = "transaction_lines"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    # Plain reference: deleting a product must leave its sales history in place.
    product_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_at_sale_lrd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    price_at_sale_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    transaction: Mapped[Transaction] = relationship(back_populates="products_sold")

    def unit_price(self, currency: Currency) -> Decimal:
        """Price recorded on the line, else the historical snapshot for the currency, else zero."""
        if self.price:
            return Decimal(self.price)
        snapshot = self.price_at_sale_lrd if currency == Currency.LRD else self.price_at_sale_usd
        if snapshot:
            return Decimal(snapshot)
        return Decimal("0")
