from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_settings, ledger_errors
from app.core.config import Settings
from app.schemas.inventory import (
    InventorySummaryOut,
    PaginationOut,
    ProductCreate,
    ProductListOut,
    ProductOut,
    ProductUpdate,
    ProductWithSalesOut,
)
from app.services import products as product_service
from app.services.aggregation import compute_store_inventory_summary, require_store
from app.services.uploads import save_product_image

router = APIRouter(prefix="/api/products", tags=["Products"])


def _with_sales(entry: product_service.ProductWithSales) -> ProductWithSalesOut:
    base = ProductOut.model_validate(entry.product).model_dump()
    return ProductWithSalesOut(
        **base,
        total_sales_lrd=entry.sales.total_sales_lrd,
        total_sales_usd=entry.sales.total_sales_usd,
        total_quantity_sold=entry.sales.total_quantity_sold,
    )


@router.get("/summary", response_model=InventorySummaryOut)
def inventory_summary(
    store: str | None = None,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        summary = compute_store_inventory_summary(db, store, settings=config)
    return InventorySummaryOut.model_validate(summary)


@router.get("", response_model=ProductListOut)
def list_products(
    store: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=500),
    low_stock: bool = Query(default=False, alias="lowStock"),
    item_name: str | None = Query(default=None, alias="itemName"),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        result = product_service.list_products(
            db,
            store,
            page=page,
            limit=limit,
            low_stock=low_stock,
            item_name=item_name,
            settings=config,
        )
    return ProductListOut(
        products=[_with_sales(entry) for entry in result.products],
        pagination=PaginationOut.model_validate(result.pagination, from_attributes=True),
    )


@router.get("/{product_id}", response_model=ProductWithSalesOut)
def get_product(product_id: int, db: Session = Depends(get_db), config: Settings = Depends(get_settings)):
    with ledger_errors():
        entry = product_service.get_product_with_sales(db, product_id, settings=config)
    return _with_sales(entry)


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    store: str | None = Form(default=None, max_length=120),
    item: str = Form(min_length=1, max_length=160),
    pieces: int | None = Form(default=None),
    price_lrd: Decimal | None = Form(default=None, ge=0),
    price_usd: Decimal | None = Form(default=None, ge=0),
    image: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        payload = ProductCreate(
            store=require_store(store),
            item=item,
            pieces=pieces,
            price_lrd=price_lrd,
            price_usd=price_usd,
        )
        image_path = None
        if image is not None and image.filename:
            image_path = save_product_image(image, config.upload_dir)
        product = product_service.create_product(db, payload, image=image_path, settings=config)
    return product


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    with ledger_errors():
        product = product_service.update_product(db, product_id, payload, settings=config)
    return product


@router.delete("/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db), config: Settings = Depends(get_settings)):
    with ledger_errors():
        product_service.delete_product(db, product_id, settings=config)
    return {"message": "Product deleted successfully"}
