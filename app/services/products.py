import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.inventory import Product
from app.schemas.inventory import ProductCreate, ProductUpdate
from app.services.aggregation import (
    ProductSalesTotals,
    compute_product_sales_totals,
    compute_sales_totals_for_products,
    require_store,
)
from app.services.errors import NotFound
from app.services.pagination import Pagination, build_pagination, validate_window
from app.services.retry import retrying_read, run_with_retry

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProductWithSales:
    product: Product
    sales: ProductSalesTotals


@dataclass(slots=True, frozen=True)
class ProductPage:
    products: list[ProductWithSales]
    pagination: Pagination


def _line_total(pieces: int | None, price: Decimal | None) -> Decimal | None:
    if pieces is None or price is None:
        return None
    return Decimal(pieces) * Decimal(price)


def recompute_totals(product: Product) -> None:
    product.total_lrd = _line_total(product.pieces, product.price_lrd)
    product.total_usd = _line_total(product.pieces, product.price_usd)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def create_product(
    db: Session,
    payload: ProductCreate,
    image: str | None = None,
    *,
    settings: Settings | None = None,
) -> Product:
    store = require_store(payload.store)

    def _work() -> Product:
        product = Product(
            store=store,
            item=payload.item,
            pieces=payload.pieces,
            price_lrd=payload.price_lrd,
            price_usd=payload.price_usd,
            image=image,
        )
        recompute_totals(product)
        db.add(product)
        db.commit()
        return product

    product = run_with_retry(db, _work, attempts=(settings or default_settings).storage_retry_attempts)
    db.refresh(product)
    logger.info("product %s created in store %s", product.id, store)
    return product


@retrying_read
def list_products(
    db: Session,
    store: str | None,
    *,
    page: int = 1,
    limit: int | None = None,
    low_stock: bool = False,
    item_name: str | None = None,
    settings: Settings | None = None,
) -> ProductPage:
    config = settings or default_settings
    store = require_store(store)
    limit = limit or config.default_page_size
    validate_window(page, limit)

    query = select(Product).where(Product.store == store)
    if item_name:
        query = query.where(Product.item.ilike(f"%{_escape_like(item_name)}%", escape="\\"))
    if low_stock:
        query = query.where(Product.pieces <= config.low_stock_threshold)

    total_items = int(db.scalar(select(func.count()).select_from(query.subquery())) or 0)

    # Low-stock views show every match up to the configured window instead of paging.
    offset = 0 if low_stock else (page - 1) * limit
    window = config.low_stock_page_size if low_stock else limit
    products = db.scalars(
        query.order_by(Product.created_at.desc(), Product.id.desc()).offset(offset).limit(window)
    ).all()

    totals = compute_sales_totals_for_products(db, [product.id for product in products])
    return ProductPage(
        products=[ProductWithSales(product=product, sales=totals[product.id]) for product in products],
        pagination=build_pagination(page, limit, total_items),
    )


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("Product not found")
    return product


@retrying_read
def get_product_with_sales(db: Session, product_id: int, *, settings: Settings | None = None) -> ProductWithSales:
    product = get_product(db, product_id)
    return ProductWithSales(product=product, sales=compute_product_sales_totals(db, product_id))


def update_product(
    db: Session,
    product_id: int,
    payload: ProductUpdate,
    *,
    settings: Settings | None = None,
) -> Product:
    def _work() -> Product:
        product = db.scalar(select(Product).where(Product.id == product_id).with_for_update())
        if not product:
            raise NotFound("Product not found")

        if payload.item is not None:
            product.item = payload.item
        if payload.pieces is not None:
            product.pieces = payload.pieces
        if payload.price_lrd is not None:
            product.price_lrd = payload.price_lrd
        if payload.price_usd is not None:
            product.price_usd = payload.price_usd
        if payload.image is not None:
            product.image = payload.image or None
        recompute_totals(product)
        db.commit()
        return product

    product = run_with_retry(db, _work, attempts=(settings or default_settings).storage_retry_attempts)
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int, *, settings: Settings | None = None) -> None:
    def _work() -> None:
        product = db.get(Product, product_id)
        if not product:
            raise NotFound("Product not found")
        db.delete(product)
        db.commit()

    run_with_retry(db, _work, attempts=(settings or default_settings).storage_retry_attempts)
    logger.info("product %s deleted", product_id)
