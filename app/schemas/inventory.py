from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from app.models.inventory import Currency, TransactionType

ReportGranularity = Literal["daily", "weekly", "monthly", "yearly"]


class ProductCreate(BaseModel):
    store: str = Field(min_length=1, max_length=120)
    item: str = Field(min_length=1, max_length=160)
    pieces: int | None = None
    price_lrd: Decimal | None = Field(default=None, ge=0)
    price_usd: Decimal | None = Field(default=None, ge=0)

    model_config = {"str_strip_whitespace": True}


class ProductUpdate(BaseModel):
    item: str | None = Field(default=None, min_length=1, max_length=160)
    pieces: int | None = None
    price_lrd: Decimal | None = Field(default=None, ge=0)
    price_usd: Decimal | None = Field(default=None, ge=0)
    image: str | None = Field(default=None, max_length=255)

    model_config = {"str_strip_whitespace": True}


class ProductOut(BaseModel):
    id: int
    store: str
    item: str
    pieces: int | None
    price_lrd: Decimal | None
    price_usd: Decimal | None
    total_lrd: Decimal | None
    total_usd: Decimal | None
    image: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductWithSalesOut(ProductOut):
    total_sales_lrd: Decimal = Decimal("0")
    total_sales_usd: Decimal = Decimal("0")
    total_quantity_sold: int = 0


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    total_items: int


class ProductListOut(BaseModel):
    products: list[ProductWithSalesOut]
    pagination: PaginationOut


class InventorySummaryOut(BaseModel):
    total_inventory_lrd: Decimal
    total_inventory_usd: Decimal
    total_sales_lrd: Decimal
    total_sales_usd: Decimal
    total_items: int

    model_config = {"from_attributes": True}


class TransactionLineIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    price: Decimal | None = Field(default=None, ge=0)


class TransactionCreate(BaseModel):
    store: str = Field(min_length=1, max_length=120)
    type: TransactionType
    currency: Currency
    products_sold: list[TransactionLineIn] = Field(min_length=1)
    note: str | None = Field(default=None, max_length=500)


class TransactionLineOut(BaseModel):
    id: int
    product_id: int | None
    quantity: int
    price: Decimal | None
    price_at_sale_lrd: Decimal | None
    price_at_sale_usd: Decimal | None

    model_config = {"from_attributes": True}


class TransactionOut(BaseModel):
    id: int
    store: str
    type: TransactionType
    currency: Currency
    total_lrd: Decimal | None
    total_usd: Decimal | None
    note: str | None
    created_at: datetime
    reversed_at: datetime | None
    is_reversed: bool
    products_sold: list[TransactionLineOut]

    model_config = {"from_attributes": True}


class TransactionListOut(BaseModel):
    transactions: list[TransactionOut]
    pagination: PaginationOut


class TopProductOut(BaseModel):
    product: ProductOut
    quantity_sold: int
    revenue: Decimal

    model_config = {"from_attributes": True}


class SalesReportBucketOut(BaseModel):
    bucket_start: date
    bucket_label: str
    total_lrd: Decimal
    total_usd: Decimal
    transaction_count: int

    model_config = {"from_attributes": True}


class SalesReportOut(BaseModel):
    store: str
    granularity: ReportGranularity
    start: date
    end: date
    timezone: str
    buckets: list[SalesReportBucketOut]
