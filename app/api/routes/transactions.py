from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_settings, ledger_errors
from app.core.config import Settings
from app.models.inventory import Currency, TransactionType
from app.schemas.inventory import (
    PaginationOut,
    ReportGranularity,
    SalesReportBucketOut,
    SalesReportOut,
    TopProductOut,
    TransactionCreate,
    TransactionListOut,
    TransactionOut,
)
from app.services import transactions as transaction_service
from app.services.aggregation import Period, build_sales_report, rank_top_products, require_store
from app.services.lifecycle import create_transaction, reverse_transaction

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])

# A bare YYYY-MM-DD bound covers that whole day in the reporting timezone.
DateBound = date | datetime


@router.post("", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def record_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        txn = create_transaction(
            db,
            store=payload.store,
            type=payload.type,
            currency=payload.currency,
            products_sold=payload.products_sold,
            note=payload.note,
            settings=config,
        )
    return txn


@router.get("", response_model=TransactionListOut)
def list_transactions(
    store: str | None = None,
    type: TransactionType | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=500),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        result = transaction_service.list_transactions(
            db, store, page=page, limit=limit, type=type, settings=config
        )
    return TransactionListOut(
        transactions=[TransactionOut.model_validate(txn) for txn in result.transactions],
        pagination=PaginationOut.model_validate(result.pagination, from_attributes=True),
    )


@router.get("/range", response_model=list[TransactionOut])
def list_transactions_in_range(
    date_from: DateBound,
    date_to: DateBound,
    store: str | None = None,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        return transaction_service.list_transactions_in_range(db, store, date_from, date_to, settings=config)


@router.get("/report", response_model=SalesReportOut)
def sales_report(
    start: date,
    end: date,
    store: str | None = None,
    granularity: ReportGranularity = "daily",
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        store = require_store(store)
        buckets = build_sales_report(db, store, granularity, start, end, settings=config)
    return SalesReportOut(
        store=store,
        granularity=granularity,
        start=start,
        end=end,
        timezone=config.report_timezone,
        buckets=[SalesReportBucketOut.model_validate(bucket) for bucket in buckets],
    )


@router.get("/top-products", response_model=list[TopProductOut])
def top_products(
    store: str | None = None,
    limit: int = Query(default=5, ge=1, le=100),
    date_from: DateBound | None = Query(default=None),
    date_to: DateBound | None = Query(default=None),
    currency: Currency | None = None,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        ranked = rank_top_products(
            db,
            store,
            limit,
            period=Period(date_from=date_from, date_to=date_to),
            currency=currency,
            settings=config,
        )
    return [TopProductOut.model_validate(entry) for entry in ranked]


@router.get("/product/{product_id}/{store}", response_model=list[TransactionOut])
def list_transactions_for_product(
    product_id: int,
    store: str,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        return transaction_service.list_transactions_for_product(db, product_id, store, settings=config)


@router.get("/date/{day}", response_model=list[TransactionOut])
def list_transactions_on_date(
    day: date,
    store: str | None = None,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        return transaction_service.list_transactions_on_date(db, store, day, settings=config)


@router.put("/{transaction_id}/reverse", response_model=TransactionOut)
def reverse(transaction_id: int, db: Session = Depends(get_db), config: Settings = Depends(get_settings)):
    with ledger_errors():
        txn = reverse_transaction(db, transaction_id, settings=config)
    return txn


@router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int, db: Session = Depends(get_db), config: Settings = Depends(get_settings)):
    with ledger_errors():
        txn = transaction_service.get_transaction(db, transaction_id, settings=config)
    return txn
