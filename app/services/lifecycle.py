"""Creation and reversal of stock-affecting transactions.

Stock is only ever changed through a single conditional UPDATE per line that
also rewrites the derived totals, so concurrent sales of the same product
cannot lose updates. Each transaction commits as one unit: either every line
and the transaction row are persisted, or nothing is.
"""
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.inventory import Currency, Product, Transaction, TransactionLine, TransactionType, utcnow
from app.schemas.inventory import TransactionLineIn
from app.services.aggregation import require_store
from app.services.errors import AlreadyReversed, InsufficientStock, NotFound, ValidationError
from app.services.retry import run_with_retry

logger = logging.getLogger(__name__)


@contextmanager
def _unit_of_work(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _coerce_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{label} must be one of: {allowed}") from exc


def apply_stock_delta(db: Session, product_id: int, delta: int, *, allow_negative: bool) -> bool:
    """Shift ``pieces`` by ``delta`` and recompute totals in one statement.

    Returns False when the guard rejected the write, i.e. the product is gone
    or the result would be negative while ``allow_negative`` is off.
    """
    pieces = func.coalesce(Product.pieces, 0)
    new_pieces = pieces + delta
    statement = update(Product).where(Product.id == product_id)
    if not allow_negative:
        statement = statement.where(new_pieces >= 0)
    statement = statement.values(
        pieces=new_pieces,
        total_lrd=new_pieces * Product.price_lrd,
        total_usd=new_pieces * Product.price_usd,
        updated_at=utcnow(),
    ).execution_options(synchronize_session=False)
    return db.execute(statement).rowcount == 1


def _create(
    db: Session,
    *,
    store: str,
    txn_type: TransactionType,
    currency: Currency,
    products_sold: Sequence[TransactionLineIn],
    note: str | None,
    allow_backorders: bool,
) -> Transaction:
    txn = Transaction(store=store, type=txn_type, currency=currency, note=note)
    total = Decimal("0")

    for position, line in enumerate(products_sold):
        if line.quantity <= 0:
            raise ValidationError("Line item quantity must be greater than zero")
        product = db.get(Product, line.product_id)
        if product is None:
            raise NotFound(f"Product {line.product_id} not found")
        if product.store != store:
            raise ValidationError(f"Product {product.id} does not belong to store {store}")

        price = line.price if line.price is not None else product.price_for(currency)
        if price is None:
            raise ValidationError(f"Product {product.id} has no {currency.value} price; supply one on the line item")

        if txn_type == TransactionType.SALE:
            delta, allow_negative = -line.quantity, allow_backorders
        else:
            delta, allow_negative = line.quantity, True
        if not apply_stock_delta(db, product.id, delta, allow_negative=allow_negative):
            raise InsufficientStock(f"Insufficient stock for {product.item}")

        txn.products_sold.append(
            TransactionLine(
                product_id=product.id,
                position=position,
                quantity=line.quantity,
                price=Decimal(price),
                price_at_sale_lrd=product.price_lrd,
                price_at_sale_usd=product.price_usd,
            )
        )
        total += Decimal(line.quantity) * Decimal(price)

    if currency == Currency.LRD:
        txn.total_lrd = total
    else:
        txn.total_usd = total
    db.add(txn)
    db.flush()
    return txn


def create_transaction(
    db: Session,
    *,
    store: str | None,
    type: TransactionType | str,
    currency: Currency | str,
    products_sold: Sequence[TransactionLineIn],
    note: str | None = None,
    allow_backorders: bool | None = None,
    settings: Settings | None = None,
) -> Transaction:
    config = settings or default_settings
    store = require_store(store)
    txn_type = _coerce_enum(TransactionType, type, "type")
    txn_currency = _coerce_enum(Currency, currency, "currency")
    if not products_sold:
        raise ValidationError("products_sold must contain at least one line item")
    backorders = config.allow_backorders if allow_backorders is None else allow_backorders

    def _work() -> Transaction:
        with _unit_of_work(db):
            txn = _create(
                db,
                store=store,
                txn_type=txn_type,
                currency=txn_currency,
                products_sold=products_sold,
                note=note,
                allow_backorders=backorders,
            )
        return txn

    try:
        txn = run_with_retry(db, _work, attempts=config.storage_retry_attempts)
    except InsufficientStock as exc:
        logger.info("rejected %s for store %s: %s", txn_type.value, store, exc)
        raise
    db.refresh(txn)
    logger.info(
        "transaction %s created: store=%s type=%s currency=%s lines=%d",
        txn.id,
        store,
        txn_type.value,
        txn_currency.value,
        len(txn.products_sold),
    )
    return txn


def _reverse(db: Session, transaction_id: int) -> Transaction:
    txn = db.get(Transaction, transaction_id)
    if txn is None:
        raise NotFound(f"Transaction {transaction_id} not found")

    marked = db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.reversed_at.is_(None))
        .values(reversed_at=utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if marked != 1:
        raise AlreadyReversed(f"Transaction {transaction_id} has already been reversed")

    for line in txn.products_sold:
        if line.product_id is None or db.get(Product, line.product_id) is None:
            logger.warning(
                "transaction %s line %s references a deleted product; stock left untouched",
                transaction_id,
                line.id,
            )
            continue
        if txn.type == TransactionType.SALE:
            restored = apply_stock_delta(db, line.product_id, line.quantity, allow_negative=True)
        else:
            restored = apply_stock_delta(db, line.product_id, -line.quantity, allow_negative=False)
        if not restored:
            raise InsufficientStock(
                f"Cannot reverse purchase {transaction_id}: product {line.product_id} "
                "does not have enough stock left"
            )
    return txn


def reverse_transaction(db: Session, transaction_id: int, *, settings: Settings | None = None) -> Transaction:
    def _work() -> Transaction:
        with _unit_of_work(db):
            txn = _reverse(db, transaction_id)
        return txn

    txn = run_with_retry(db, _work, attempts=(settings or default_settings).storage_retry_attempts)
    db.refresh(txn)
    logger.info("transaction %s reversed", txn.id)
    return txn
