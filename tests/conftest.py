from collections.abc import Callable, Iterator
from contextlib import ExitStack
from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.database import Database
from app.main import create_app
from app.models import Currency, Product, TransactionType
from app.schemas.inventory import TransactionLineIn
from app.services.lifecycle import create_transaction
from app.services.products import recompute_totals

STORE = "monrovia-central"


@pytest.fixture()
def database() -> Iterator[Database]:
    database = Database("sqlite:///:memory:")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture()
def db_session(database: Database) -> Iterator[Session]:
    session = database.session()
    yield session
    session.close()


@pytest.fixture()
def make_product(db_session: Session) -> Callable[..., Product]:
    def _make(
        item: str = "Rice 25kg",
        *,
        store: str = STORE,
        pieces: int | None = 10,
        price_lrd: str | None = "100",
        price_usd: str | None = None,
    ) -> Product:
        product = Product(
            store=store,
            item=item,
            pieces=pieces,
            price_lrd=Decimal(price_lrd) if price_lrd is not None else None,
            price_usd=Decimal(price_usd) if price_usd is not None else None,
        )
        recompute_totals(product)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture()
def sell(db_session: Session):
    def _sell(
        product: Product,
        quantity: int,
        price: str | None = None,
        *,
        currency: Currency = Currency.LRD,
        type: TransactionType = TransactionType.SALE,
        store: str = STORE,
    ):
        line = TransactionLineIn(
            product_id=product.id,
            quantity=quantity,
            price=Decimal(price) if price is not None else None,
        )
        return create_transaction(db_session, store=store, type=type, currency=currency, products_sold=[line])

    return _sell


@pytest.fixture()
def make_client(database: Database, tmp_path) -> Iterator[Callable[..., TestClient]]:
    """Build clients over the shared test database with selected settings overridden."""
    with ExitStack() as stack:

        def _make(**overrides) -> TestClient:
            values = {
                "upload_dir": str(tmp_path / "uploads"),
                "auto_create_schema": False,
                "report_timezone": "UTC",
                "allow_backorders": False,
                "low_stock_threshold": 7,
                "low_stock_page_size": 100,
                "default_page_size": 20,
                **overrides,
            }
            application = create_app(replace(settings, **values), database)
            return stack.enter_context(TestClient(application))

        yield _make


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()
