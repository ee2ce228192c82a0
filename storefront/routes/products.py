from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.models.stock_movement import StockMovement
from storefront.schemas.product import (
    CategoryCreate,
    CategoryOut,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    StockAdd,
    StockMovementOut,
)
from storefront.services import inventory_service
from storefront.services.realtime_service import RealtimeService, get_notifier


router = APIRouter(prefix="/products", tags=["products"])
categories_router = APIRouter(prefix="/categories", tags=["categories"])


def _check_category(db: Session, category_id):
    if category_id and not db.query(Category.id).filter(Category.id == category_id).first():
        raise HTTPException(status_code=400, detail="Unknown category_id")


@router.get("", response_model=list[ProductOut])
def list_products(
    category_id: UUID | None = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    q = db.query(Product)
    if category_id:
        q = q.filter(Product.category_id == category_id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.created_at.desc()).all()


@router.post("", response_model=ProductOut, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    _check_category(db, payload.category_id)

    product = Product(
        title=payload.title,
        description=payload.description,
        price=payload.price,
        category_id=payload.category_id,
        stock=payload.stock,
        reserved_stock=0,
        available_stock=payload.stock,
        total_sold=0,
        total_ordered=0,
        low_stock_alert=payload.low_stock_alert,
        is_active=payload.is_active,
    )
    db.add(product)
    db.flush()

    if payload.stock:
        db.add(StockMovement(product_id=product.id, type="IN", quantity=payload.stock, reason="Initial stock"))

    db.commit()
    db.refresh(product)
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: UUID, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    data = payload.model_dump(exclude_unset=True)
    if "category_id" in data:
        _check_category(db, data["category_id"])

    for k, v in data.items():
        if v is None and k in ("title", "price", "low_stock_alert", "is_active"):
            continue
        setattr(product, k, v)

    db.commit()
    db.refresh(product)
    return product


@router.post("/{product_id}/stock", response_model=ProductOut)
def add_stock(
    product_id: UUID,
    payload: StockAdd,
    notifier: RealtimeService = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    product = inventory_service.add_stock(db, product_id, payload.quantity, payload.reason)
    db.commit()
    db.refresh(product)

    inventory_service.broadcast_inventory(notifier, [product])
    return product


@router.get("/{product_id}/stock-movements", response_model=list[StockMovementOut])
def stock_movements(
    product_id: UUID,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return inventory_service.get_stock_movements(db, product_id, limit=limit)


# ============================================================
# Categories
# ============================================================
@categories_router.get("", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name.asc()).all()


@categories_router.post("", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    exists = db.query(Category.id).filter(Category.name == payload.name).first()
    if exists:
        raise HTTPException(status_code=409, detail="Category already exists")

    category = Category(name=payload.name, description=payload.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category
