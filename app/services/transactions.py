from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.inventory import Transaction, TransactionLine, TransactionType
from app.services.aggregation import Period, local_day_bounds, report_timezone, require_store
from app.services.errors import NotFound, ValidationError
from app.services.pagination import Pagination, build_pagination, validate_window
from app.services.retry import retrying_read


@dataclass(slots=True, frozen=True)
class TransactionPage:
    transactions: list[Transaction]
    pagination: Pagination


def _newest_first(query):
    return query.order_by(Transaction.created_at.desc(), Transaction.id.desc())


@retrying_read
def get_transaction(db: Session, transaction_id: int, *, settings: Settings | None = None) -> Transaction:
    txn = db.get(Transaction, transaction_id)
    if not txn:
        raise NotFound("Transaction not found")
    return txn


@retrying_read
def list_transactions(
    db: Session,
    store: str | None,
    *,
    page: int = 1,
    limit: int | None = None,
    type: TransactionType | None = None,
    settings: Settings | None = None,
) -> TransactionPage:
    store = require_store(store)
    limit = limit or (settings or default_settings).default_page_size
    validate_window(page, limit)

    query = select(Transaction).where(Transaction.store == store)
    if type is not None:
        query = query.where(Transaction.type == type)
    total_items = int(db.scalar(select(func.count()).select_from(query.subquery())) or 0)
    transactions = db.scalars(_newest_first(query).offset((page - 1) * limit).limit(limit)).all()
    return TransactionPage(
        transactions=list(transactions),
        pagination=build_pagination(page, limit, total_items),
    )


@retrying_read
def list_transactions_in_range(
    db: Session,
    store: str | None,
    date_from: date | datetime,
    date_to: date | datetime,
    *,
    settings: Settings | None = None,
) -> list[Transaction]:
    """Transactions created within the window; bare dates cover whole local days."""
    store = require_store(store)
    if date_from is None or date_to is None:
        raise ValidationError("date_from and date_to are required")
    period = Period(date_from=date_from, date_to=date_to)
    query = select(Transaction).where(Transaction.store == store)
    for clause in period.conditions(Transaction.created_at, report_timezone(settings=settings)):
        query = query.where(clause)
    return list(db.scalars(_newest_first(query)).all())


@retrying_read
def list_transactions_on_date(
    db: Session,
    store: str | None,
    day: date,
    *,
    settings: Settings | None = None,
) -> list[Transaction]:
    store = require_store(store)
    lower, upper = local_day_bounds(day, day, report_timezone(settings=settings))
    query = select(Transaction).where(
        Transaction.store == store,
        Transaction.created_at >= lower,
        Transaction.created_at < upper,
    )
    return list(db.scalars(_newest_first(query)).all())


@retrying_read
def list_transactions_for_product(
    db: Session,
    product_id: int,
    store: str | None,
    *,
    settings: Settings | None = None,
) -> list[Transaction]:
    store = require_store(store)
    referencing = select(TransactionLine.transaction_id).where(TransactionLine.product_id == product_id)
    query = select(Transaction).where(
        Transaction.store == store,
        Transaction.id.in_(referencing),
    )
    return list(db.scalars(_newest_first(query)).all())
