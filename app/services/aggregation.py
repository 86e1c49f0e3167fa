"""Derived totals over products and their sale transactions.

Everything here is read-only. Reversed transactions never contribute, and a
line whose product has since been deleted contributes nothing rather than
failing the whole computation.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session, contains_eager

from app.core.config import Settings, settings as default_settings
from app.models.inventory import Currency, Product, Transaction, TransactionLine, TransactionType
from app.services.errors import ValidationError
from app.services.retry import retrying_read

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
GRANULARITIES = ("daily", "weekly", "monthly", "yearly")


@dataclass(slots=True)
class ProductSalesTotals:
    total_sales_lrd: Decimal = ZERO
    total_sales_usd: Decimal = ZERO
    total_quantity_sold: int = 0


@dataclass(slots=True, frozen=True)
class InventorySummary:
    store: str
    total_inventory_lrd: Decimal
    total_inventory_usd: Decimal
    total_sales_lrd: Decimal
    total_sales_usd: Decimal
    total_items: int


@dataclass(slots=True)
class TopProduct:
    product: Product
    quantity_sold: int = 0
    revenue: Decimal = ZERO


@dataclass(slots=True)
class SalesReportBucket:
    bucket_start: date
    bucket_label: str
    total_lrd: Decimal = ZERO
    total_usd: Decimal = ZERO
    transaction_count: int = 0


@dataclass(slots=True, frozen=True)
class Period:
    """Creation-time window. A bare date stands for that whole local calendar day."""

    date_from: date | datetime | None = None
    date_to: date | datetime | None = None

    def conditions(self, column, tz: ZoneInfo) -> list:
        clauses = []
        lower = upper = None
        if isinstance(self.date_from, datetime):
            lower = as_utc(self.date_from)
        elif self.date_from is not None:
            lower = local_day_bounds(self.date_from, self.date_from, tz)[0]
        if lower is not None:
            clauses.append(column >= lower)

        inclusive = isinstance(self.date_to, datetime)
        if inclusive:
            upper = as_utc(self.date_to)
            clauses.append(column <= upper)
        elif self.date_to is not None:
            upper = local_day_bounds(self.date_to, self.date_to, tz)[1]
            clauses.append(column < upper)

        if lower is not None and upper is not None and (lower > upper if inclusive else lower >= upper):
            raise ValidationError("date_from must not be after date_to")
        return clauses


@dataclass(slots=True)
class _Accumulator:
    quantity: int = 0
    revenue: Decimal = field(default=ZERO)


def as_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware inputs are converted to match."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def require_store(store: str | None) -> str:
    if store is None or not store.strip():
        raise ValidationError("Store parameter is required")
    return store.strip()


def _active_sales():
    return select(Transaction).where(
        Transaction.type == TransactionType.SALE,
        Transaction.reversed_at.is_(None),
    )


def _active_sale_lines():
    return (
        select(TransactionLine)
        .join(TransactionLine.transaction)
        .options(contains_eager(TransactionLine.transaction))
        .where(
            Transaction.type == TransactionType.SALE,
            Transaction.reversed_at.is_(None),
        )
    )


def transaction_total(txn: Transaction, known_product_ids: set[int] | None = None) -> Decimal:
    """Stored total when present and non-zero, otherwise recomputed from the line items."""
    stored = txn.stored_total()
    if stored:
        return Decimal(stored)
    total = ZERO
    for line in txn.products_sold:
        if known_product_ids is not None and line.product_id not in known_product_ids:
            continue
        total += Decimal(line.quantity) * line.unit_price(txn.currency)
    return total


def _inventory_value(stored_total: Decimal | None, pieces: int | None, price: Decimal | None) -> Decimal:
    if stored_total:
        return Decimal(stored_total)
    if pieces and price:
        return Decimal(pieces) * Decimal(price)
    return ZERO


def compute_sales_totals_for_products(db: Session, product_ids: Iterable[int]) -> dict[int, ProductSalesTotals]:
    ids = list(product_ids)
    totals = {product_id: ProductSalesTotals() for product_id in ids}
    if not ids:
        return totals

    existing = list(db.scalars(select(Product.id).where(Product.id.in_(ids))).all())
    if not existing:
        return totals
    lines = db.scalars(_active_sale_lines().where(TransactionLine.product_id.in_(existing))).all()
    for line in lines:
        currency = line.transaction.currency
        entry = totals[line.product_id]
        amount = Decimal(line.quantity) * line.unit_price(currency)
        entry.total_quantity_sold += line.quantity
        if currency == Currency.LRD:
            entry.total_sales_lrd += amount
        else:
            entry.total_sales_usd += amount
    return totals


def compute_product_sales_totals(db: Session, product_id: int) -> ProductSalesTotals:
    return compute_sales_totals_for_products(db, [product_id])[product_id]


@retrying_read
def compute_store_inventory_summary(
    db: Session,
    store: str | None,
    *,
    settings: Settings | None = None,
) -> InventorySummary:
    store = require_store(store)

    products = db.scalars(select(Product).where(Product.store == store)).all()
    inventory_lrd = ZERO
    inventory_usd = ZERO
    for product in products:
        inventory_lrd += _inventory_value(product.total_lrd, product.pieces, product.price_lrd)
        inventory_usd += _inventory_value(product.total_usd, product.pieces, product.price_usd)

    known_ids = {product.id for product in products}
    sales_lrd = ZERO
    sales_usd = ZERO
    for txn in db.scalars(_active_sales().where(Transaction.store == store)).all():
        amount = transaction_total(txn, known_ids)
        if txn.currency == Currency.LRD:
            sales_lrd += amount
        else:
            sales_usd += amount

    logger.debug("inventory summary for store %s covers %d products", store, len(products))
    return InventorySummary(
        store=store,
        total_inventory_lrd=inventory_lrd,
        total_inventory_usd=inventory_usd,
        total_sales_lrd=sales_lrd,
        total_sales_usd=sales_usd,
        total_items=len(products),
    )


@retrying_read
def rank_top_products(
    db: Session,
    store: str | None,
    limit: int,
    period: Period | None = None,
    currency: Currency | None = None,
    *,
    settings: Settings | None = None,
) -> list[TopProduct]:
    store = require_store(store)
    if limit < 1:
        raise ValidationError("limit must be at least 1")

    query = _active_sale_lines().where(
        Transaction.store == store,
        TransactionLine.product_id.is_not(None),
    )
    if period is not None:
        tz = report_timezone(settings=settings)
        for clause in period.conditions(Transaction.created_at, tz):
            query = query.where(clause)
    if currency is not None:
        query = query.where(Transaction.currency == currency)

    merged: dict[int, _Accumulator] = {}
    for line in db.scalars(query).all():
        entry = merged.setdefault(line.product_id, _Accumulator())
        entry.quantity += line.quantity
        entry.revenue += Decimal(line.quantity) * line.unit_price(line.transaction.currency)

    if not merged:
        return []

    products = {
        product.id: product
        for product in db.scalars(select(Product).where(Product.id.in_(list(merged.keys())))).all()
    }
    ranked = [
        TopProduct(product=products[product_id], quantity_sold=values.quantity, revenue=values.revenue)
        for product_id, values in merged.items()
        if product_id in products
    ]
    ranked.sort(key=lambda entry: (-entry.quantity_sold, -entry.revenue, entry.product.id))
    return ranked[:limit]


def report_timezone(name: str | None = None, *, settings: Settings | None = None) -> ZoneInfo:
    name = name or (settings or default_settings).report_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown reporting timezone: {name}") from exc


def local_day_bounds(start: date, end: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds [start 00:00, end+1 00:00) for an inclusive range of local calendar days."""
    lower = datetime.combine(start, time.min, tzinfo=tz).astimezone(timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return lower.replace(tzinfo=None), upper.replace(tzinfo=None)


def _bucket_start(value: date, granularity: str) -> date:
    if granularity == "yearly":
        return date(value.year, 1, 1)
    if granularity == "monthly":
        return date(value.year, value.month, 1)
    if granularity == "weekly":
        return value - timedelta(days=value.weekday())
    return value


def _next_bucket(value: date, granularity: str) -> date:
    if granularity == "yearly":
        return date(value.year + 1, 1, 1)
    if granularity == "monthly":
        if value.month == 12:
            return date(value.year + 1, 1, 1)
        return date(value.year, value.month + 1, 1)
    if granularity == "weekly":
        return value + timedelta(days=7)
    return value + timedelta(days=1)


def _bucket_label(value: date, granularity: str) -> str:
    if granularity == "yearly":
        return value.strftime("%Y")
    if granularity == "monthly":
        return value.strftime("%Y-%m")
    if granularity == "weekly":
        iso = value.isocalendar()
        return f"{iso.year}-W{iso.week:02d}"
    return value.strftime("%Y-%m-%d")


def _bucket_count(first: date, last: date, granularity: str) -> int:
    if granularity == "yearly":
        return last.year - first.year + 1
    if granularity == "monthly":
        return (last.year - first.year) * 12 + last.month - first.month + 1
    if granularity == "weekly":
        return (last - first).days // 7 + 1
    return (last - first).days + 1


@retrying_read
def build_sales_report(
    db: Session,
    store: str | None,
    granularity: str,
    start: date,
    end: date,
    timezone_name: str | None = None,
    *,
    settings: Settings | None = None,
) -> list[SalesReportBucket]:
    store = require_store(store)
    if granularity not in GRANULARITIES:
        raise ValidationError(f"granularity must be one of: {', '.join(GRANULARITIES)}")
    if start > end:
        raise ValidationError("Report start must not be after its end")

    config = settings or default_settings
    tz = report_timezone(timezone_name, settings=config)
    cursor = _bucket_start(start, granularity)
    last = _bucket_start(end, granularity)
    if _bucket_count(cursor, last, granularity) > config.report_max_buckets:
        raise ValidationError(
            f"Report range spans more than {config.report_max_buckets} {granularity} buckets; "
            "narrow the range or use a coarser granularity"
        )

    buckets: dict[date, SalesReportBucket] = {}
    while cursor <= last:
        buckets[cursor] = SalesReportBucket(bucket_start=cursor, bucket_label=_bucket_label(cursor, granularity))
        cursor = _next_bucket(cursor, granularity)

    lower, upper = local_day_bounds(start, end, tz)
    known_ids = set(db.scalars(select(Product.id).where(Product.store == store)).all())
    transactions = db.scalars(
        _active_sales().where(
            Transaction.store == store,
            Transaction.created_at >= lower,
            Transaction.created_at < upper,
        )
    ).all()

    for txn in transactions:
        local_day = txn.created_at.replace(tzinfo=timezone.utc).astimezone(tz).date()
        bucket = buckets[_bucket_start(local_day, granularity)]
        amount = transaction_total(txn, known_ids)
        if txn.currency == Currency.LRD:
            bucket.total_lrd += amount
        else:
            bucket.total_usd += amount
        bucket.transaction_count += 1

    return list(buckets.values())
