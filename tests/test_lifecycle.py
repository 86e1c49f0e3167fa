from collections.abc import Iterator
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.database import Database
from app.models import Currency, Product, Transaction, TransactionType
from app.schemas.inventory import TransactionLineIn
from app.services.aggregation import compute_store_inventory_summary
from app.services.errors import AlreadyReversed, InsufficientStock, NotFound, ValidationError
from app.services.lifecycle import apply_stock_delta, create_transaction, reverse_transaction
from app.services.products import recompute_totals
from tests.conftest import STORE


def test_sale_decrements_stock_and_snapshots_prices(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="100", price_usd="0.75")

    txn = sell(product, 3, "120")

    db_session.refresh(product)
    assert product.pieces == 7
    assert product.total_lrd == Decimal("700")
    assert product.total_usd == Decimal("5.25")
    assert txn.total_lrd == Decimal("360")
    assert txn.total_usd is None
    line = txn.products_sold[0]
    assert line.price == Decimal("120")
    assert line.price_at_sale_lrd == Decimal("100")
    assert line.price_at_sale_usd == Decimal("0.75")
    assert not txn.is_reversed


def test_line_price_defaults_to_current_product_price(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="100", price_usd="2")

    txn = sell(product, 2, currency=Currency.USD)

    assert txn.products_sold[0].price == Decimal("2")
    assert txn.total_usd == Decimal("4")


def test_historical_price_survives_price_change(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="100")
    txn = sell(product, 1)

    product.price_lrd = Decimal("250")
    db_session.commit()

    db_session.refresh(txn)
    assert txn.products_sold[0].price == Decimal("100")
    assert txn.total_lrd == Decimal("100")


def test_purchase_increments_stock(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=None, price_lrd="40")

    sell(product, 12, "35", type=TransactionType.PURCHASE)

    db_session.refresh(product)
    assert product.pieces == 12
    assert product.total_lrd == Decimal("480")


def test_sale_rejected_when_stock_is_insufficient(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=2, price_lrd="100")

    with pytest.raises(InsufficientStock):
        sell(product, 3)

    db_session.refresh(product)
    assert product.pieces == 2
    assert db_session.query(Transaction).count() == 0


def test_backorders_allow_negative_stock(db_session: Session, make_product) -> None:
    product = make_product(pieces=1, price_lrd="10")

    create_transaction(
        db_session,
        store=STORE,
        type="sale",
        currency="LRD",
        products_sold=[TransactionLineIn(product_id=product.id, quantity=4)],
        allow_backorders=True,
    )

    db_session.refresh(product)
    assert product.pieces == -3
    assert product.total_lrd == Decimal("-30")


def test_multi_line_transaction_is_all_or_nothing(db_session: Session, make_product) -> None:
    plenty = make_product("Plenty", pieces=50, price_lrd="10")
    scarce = make_product("Scarce", pieces=1, price_lrd="10")

    with pytest.raises(InsufficientStock):
        create_transaction(
            db_session,
            store=STORE,
            type=TransactionType.SALE,
            currency=Currency.LRD,
            products_sold=[
                TransactionLineIn(product_id=plenty.id, quantity=5),
                TransactionLineIn(product_id=scarce.id, quantity=2),
            ],
        )

    db_session.refresh(plenty)
    db_session.refresh(scarce)
    assert plenty.pieces == 50
    assert plenty.total_lrd == Decimal("500")
    assert scarce.pieces == 1
    assert db_session.query(Transaction).count() == 0


def test_sequential_sales_cannot_oversell(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="10")

    sell(product, 6)
    with pytest.raises(InsufficientStock):
        sell(product, 6)

    db_session.refresh(product)
    assert product.pieces == 4


def test_conditional_stock_write_reports_rejection(db_session: Session, make_product) -> None:
    product = make_product(pieces=3, price_lrd="10")

    assert apply_stock_delta(db_session, product.id, -4, allow_negative=False) is False
    assert apply_stock_delta(db_session, product.id, -3, allow_negative=False) is True
    assert apply_stock_delta(db_session, 424242, 1, allow_negative=True) is False
    db_session.commit()

    db_session.refresh(product)
    assert product.pieces == 0
    assert product.total_lrd == Decimal("0")


@pytest.mark.parametrize(
    ("kwargs", "error"),
    [
        ({"store": None}, ValidationError),
        ({"type": "refund"}, ValidationError),
        ({"currency": "EUR"}, ValidationError),
        ({"products_sold": []}, ValidationError),
    ],
)
def test_create_transaction_validates_request(db_session: Session, make_product, kwargs, error) -> None:
    product = make_product()
    request = {
        "store": STORE,
        "type": "sale",
        "currency": "LRD",
        "products_sold": [TransactionLineIn(product_id=product.id, quantity=1)],
    }
    request.update(kwargs)

    with pytest.raises(error):
        create_transaction(db_session, **request)


def test_create_transaction_checks_product_store_and_existence(db_session: Session, make_product) -> None:
    elsewhere = make_product(store="paynesville")

    with pytest.raises(ValidationError):
        create_transaction(
            db_session,
            store=STORE,
            type="sale",
            currency="LRD",
            products_sold=[TransactionLineIn(product_id=elsewhere.id, quantity=1)],
        )
    with pytest.raises(NotFound):
        create_transaction(
            db_session,
            store=STORE,
            type="sale",
            currency="LRD",
            products_sold=[TransactionLineIn(product_id=999, quantity=1)],
        )


def test_create_transaction_requires_a_price(db_session: Session, make_product) -> None:
    product = make_product(price_lrd="10", price_usd=None)

    with pytest.raises(ValidationError):
        create_transaction(
            db_session,
            store=STORE,
            type="sale",
            currency="USD",
            products_sold=[TransactionLineIn(product_id=product.id, quantity=1)],
        )


def test_reversing_a_sale_restores_stock_and_totals(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="100")
    txn = sell(product, 3, "120")

    reversed_txn = reverse_transaction(db_session, txn.id)

    assert reversed_txn.is_reversed
    db_session.refresh(product)
    assert product.pieces == 10
    assert product.total_lrd == Decimal("1000")
    assert compute_store_inventory_summary(db_session, STORE).total_sales_lrd == Decimal("0")


def test_reversing_twice_fails_and_leaves_stock_alone(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=10, price_lrd="100")
    txn = sell(product, 3)
    reverse_transaction(db_session, txn.id)

    with pytest.raises(AlreadyReversed):
        reverse_transaction(db_session, txn.id)

    db_session.refresh(product)
    assert product.pieces == 10


def test_reversing_unknown_transaction(db_session: Session) -> None:
    with pytest.raises(NotFound):
        reverse_transaction(db_session, 31337)


def test_purchase_reversal_cannot_drive_stock_negative(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=0, price_lrd="10")
    purchase = sell(product, 5, type=TransactionType.PURCHASE)
    sell(product, 4)

    with pytest.raises(InsufficientStock):
        reverse_transaction(db_session, purchase.id)

    db_session.refresh(product)
    db_session.refresh(purchase)
    assert product.pieces == 1
    assert not purchase.is_reversed


def test_purchase_reversal_removes_stock(db_session: Session, make_product, sell) -> None:
    product = make_product(pieces=2, price_lrd="10")
    purchase = sell(product, 5, type=TransactionType.PURCHASE)

    reverse_transaction(db_session, purchase.id)

    db_session.refresh(product)
    assert product.pieces == 2
    assert product.total_lrd == Decimal("20")


def test_reversal_tolerates_deleted_product(db_session: Session, make_product, sell) -> None:
    kept = make_product("Kept", pieces=10, price_lrd="10")
    gone = make_product("Gone", pieces=10, price_lrd="10")
    txn = create_transaction(
        db_session,
        store=STORE,
        type="sale",
        currency="LRD",
        products_sold=[
            TransactionLineIn(product_id=kept.id, quantity=2),
            TransactionLineIn(product_id=gone.id, quantity=3),
        ],
    )
    db_session.delete(db_session.get(Product, gone.id))
    db_session.commit()

    reverse_transaction(db_session, txn.id)

    db_session.refresh(kept)
    assert kept.pieces == 10
    assert len(db_session.get(Transaction, txn.id).products_sold) == 2


@pytest.fixture()
def file_database(tmp_path) -> Iterator[Database]:
    database = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture()
def two_sessions(file_database: Database) -> Iterator[tuple[Session, Session]]:
    first, second = file_database.session(), file_database.session()
    yield first, second
    first.close()
    second.close()


def _stocked_product(db: Session, pieces: int) -> Product:
    product = Product(store=STORE, item="Rice 25kg", pieces=pieces, price_lrd=Decimal("100"))
    recompute_totals(product)
    db.add(product)
    db.commit()
    return product


def _sale(db: Session, product_id: int, quantity: int) -> Transaction:
    return create_transaction(
        db,
        store=STORE,
        type="sale",
        currency="LRD",
        products_sold=[TransactionLineIn(product_id=product_id, quantity=quantity)],
    )


def test_concurrent_reversals_cannot_both_succeed(file_database: Database, two_sessions) -> None:
    first, second = two_sessions
    product = _stocked_product(first, pieces=10)
    txn = _sale(first, product.id, 3)

    assert not first.get(Transaction, txn.id).is_reversed
    assert not second.get(Transaction, txn.id).is_reversed

    reverse_transaction(second, txn.id)
    with pytest.raises(AlreadyReversed):
        reverse_transaction(first, txn.id)

    with file_database.session() as fresh:
        assert fresh.get(Product, product.id).pieces == 10
        assert fresh.get(Transaction, txn.id).is_reversed


def test_concurrent_sales_do_not_lose_updates(file_database: Database, two_sessions) -> None:
    first, second = two_sessions
    product_id = _stocked_product(first, pieces=5).id

    assert first.get(Product, product_id).pieces == 5
    assert second.get(Product, product_id).pieces == 5

    _sale(second, product_id, 2)
    _sale(first, product_id, 2)

    with file_database.session() as fresh:
        stored = fresh.get(Product, product_id)
        assert stored.pieces == 1
        assert stored.total_lrd == Decimal("100")


def test_concurrent_sales_cannot_oversell(file_database: Database, two_sessions) -> None:
    first, second = two_sessions
    product_id = _stocked_product(first, pieces=5).id

    assert first.get(Product, product_id).pieces == 5
    assert second.get(Product, product_id).pieces == 5

    _sale(second, product_id, 4)
    with pytest.raises(InsufficientStock):
        _sale(first, product_id, 4)

    with file_database.session() as fresh:
        assert fresh.get(Product, product_id).pieces == 1
        assert fresh.scalar(select(func.count()).select_from(Transaction)) == 1
