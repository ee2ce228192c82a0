from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.deps.user import get_current_user_id
from storefront.schemas.order import (
    OrderBlockSettings,
    OrderCreate,
    OrderOut,
    OrderPage,
    OrderStatsOut,
    OrderStatus,
    OrderStatusUpdate,
)
from storefront.services import order_service
from storefront.services.realtime_service import RealtimeService, get_notifier


router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: str = Depends(get_current_user_id),
    notifier: RealtimeService = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    order = order_service.create_order(db, user_id, payload, notifier=notifier)
    return order_service.order_to_out(db, order)


@router.get("/my", response_model=list[OrderOut])
def my_orders(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return order_service.orders_to_out(db, order_service.get_my_orders(db, user_id))


@router.get("/{order_id}", response_model=OrderOut)
def read_order(order_id: UUID, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_id, user_id=user_id)
    return order_service.order_to_out(db, order)


# ============================================================
# Admin
# ============================================================
@admin_router.get("/orders", response_model=OrderPage)
def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: OrderStatus | None = None,
    db: Session = Depends(get_db),
):
    orders, pagination = order_service.list_orders(db, page=page, limit=limit, status=status)
    return {"orders": order_service.orders_to_out(db, orders), **pagination}


@admin_router.get("/orders/stats", response_model=OrderStatsOut)
def order_stats(db: Session = Depends(get_db)):
    return order_service.get_order_stats(db)


@admin_router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    notifier: RealtimeService = Depends(get_notifier),
    db: Session = Depends(get_db),
):
    order = order_service.update_order_status(db, order_id, payload.status, notifier=notifier)
    return order_service.order_to_out(db, order)


@admin_router.get("/order-settings", response_model=OrderBlockSettings)
def read_order_settings(db: Session = Depends(get_db)):
    return order_service.get_order_block_settings(db)


@admin_router.put("/order-settings", response_model=OrderBlockSettings)
def update_order_settings(payload: OrderBlockSettings, db: Session = Depends(get_db)):
    settings = order_service.update_order_block_settings(db, payload)
    db.commit()
    order_service.invalidate_order_settings_cache()
    return settings
