from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.deps.user import get_current_user_id
from storefront.schemas.cart import (
    CartItemAdd,
    CartItemUpdate,
    CartMutationOut,
    CartOut,
    EligibleRuleOut,
    GiftSelection,
    ReevaluationOut,
)
from storefront.services import cart_service


router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def read_cart(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return cart_service.get_cart(db, user_id)


@router.delete("")
def clear_cart(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    deleted = cart_service.clear_cart(db, user_id)
    db.commit()
    return {"deleted": deleted}


@router.post("/items", response_model=CartMutationOut)
def add_item(payload: CartItemAdd, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    result = cart_service.add_to_cart(db, user_id, payload.product_id, payload.quantity)
    db.commit()
    return result


@router.patch("/items/{item_id}", response_model=CartMutationOut)
def update_item(
    item_id: UUID,
    payload: CartItemUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = cart_service.update_quantity(db, user_id, item_id, payload.quantity)
    db.commit()
    return result


@router.delete("/items/{item_id}", response_model=CartMutationOut)
def remove_item(item_id: UUID, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    result = cart_service.remove_from_cart(db, user_id, item_id)
    db.commit()
    return result


# ============================================================
# Gifts
# ============================================================
@router.get("/gifts/eligible", response_model=list[EligibleRuleOut])
def eligible_gifts(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return cart_service.get_eligible_gifts(db, user_id)


@router.post("/gifts", response_model=CartOut, status_code=201)
def add_gift(payload: GiftSelection, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    cart_service.add_gift_product(db, user_id, payload.gift_rule_id, payload.product_id)
    db.commit()
    return cart_service.get_cart(db, user_id)


@router.delete("/gifts/{item_id}", response_model=CartOut)
def remove_gift(item_id: UUID, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    cart_service.remove_gift_product(db, user_id, item_id)
    db.commit()
    return cart_service.get_cart(db, user_id)


@router.post("/gifts/reevaluate", response_model=ReevaluationOut)
def reevaluate(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    result = cart_service.reevaluate_gifts(db, user_id)
    db.commit()
    return result
