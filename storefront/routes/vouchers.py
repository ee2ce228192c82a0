from datetime import timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.models.voucher import Voucher
from storefront.schemas.voucher import VoucherCreate, VoucherOut


router = APIRouter(prefix="/admin/vouchers", tags=["vouchers"])


@router.get("", response_model=list[VoucherOut])
def list_vouchers(active_only: bool = False, db: Session = Depends(get_db)):
    q = db.query(Voucher)
    if active_only:
        q = q.filter(Voucher.is_active.is_(True))
    return q.order_by(Voucher.created_at.desc()).all()


@router.post("", response_model=VoucherOut, status_code=201)
def create_voucher(payload: VoucherCreate, db: Session = Depends(get_db)):
    code = payload.code.strip().upper()
    if db.query(Voucher.id).filter(Voucher.code == code).first():
        raise HTTPException(status_code=409, detail="Voucher code already exists")

    if payload.discount_type == "percentage" and payload.discount_value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")

    valid_until = payload.valid_until
    if valid_until and valid_until.tzinfo is not None:
        valid_until = valid_until.astimezone(timezone.utc).replace(tzinfo=None)

    voucher = Voucher(
        code=code,
        discount_type=payload.discount_type,
        discount_value=payload.discount_value,
        min_purchase=payload.min_purchase,
        max_discount=payload.max_discount,
        valid_until=valid_until,
        is_active=payload.is_active,
        used_count=0,
    )
    db.add(voucher)
    db.commit()
    db.refresh(voucher)
    return voucher
