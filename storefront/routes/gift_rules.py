from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.db import get_db
from storefront.deps.user import get_admin_user_id
from storefront.schemas.gift_rule import (
    GiftRuleCreate,
    GiftRuleOut,
    GiftRulePage,
    GiftRuleToggle,
    GiftRuleUpdate,
    PublicGiftRuleOut,
    RuleStatisticsOut,
)
from storefront.services import gift_rule_service


router = APIRouter(prefix="/admin/gift-rules", tags=["gift-rules"])
public_router = APIRouter(prefix="/gift-rules", tags=["gift-rules"])


@router.get("", response_model=GiftRulePage)
def list_gift_rules(
    include_inactive: bool = True,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    rules, pagination = gift_rule_service.list_rules(db, include_inactive=include_inactive, page=page, limit=limit)
    return {"rules": gift_rule_service.rules_to_out(db, rules), "pagination": pagination}


@router.post("", response_model=GiftRuleOut, status_code=201)
def create_gift_rule(
    payload: GiftRuleCreate,
    admin_id: str | None = Depends(get_admin_user_id),
    db: Session = Depends(get_db),
):
    rule = gift_rule_service.create_rule(db, payload, created_by=admin_id)
    db.commit()
    db.refresh(rule)
    return gift_rule_service.rule_to_out(db, rule)


@router.get("/{rule_id}", response_model=GiftRuleOut)
def get_gift_rule(rule_id: UUID, db: Session = Depends(get_db)):
    rule = gift_rule_service.get_rule(db, rule_id)
    return gift_rule_service.rule_to_out(db, rule)


@router.put("/{rule_id}", response_model=GiftRuleOut)
def update_gift_rule(rule_id: UUID, payload: GiftRuleUpdate, db: Session = Depends(get_db)):
    rule = gift_rule_service.update_rule(db, rule_id, payload)
    db.commit()
    db.refresh(rule)
    return gift_rule_service.rule_to_out(db, rule)


@router.delete("/{rule_id}")
def delete_gift_rule(rule_id: UUID, db: Session = Depends(get_db)):
    gift_rule_service.delete_rule(db, rule_id)
    db.commit()
    return {"deleted": True}


@router.patch("/{rule_id}/toggle", response_model=GiftRuleOut)
def toggle_gift_rule(rule_id: UUID, payload: GiftRuleToggle, db: Session = Depends(get_db)):
    rule = gift_rule_service.toggle_rule_status(db, rule_id, payload.is_active)
    db.commit()
    db.refresh(rule)
    return gift_rule_service.rule_to_out(db, rule)


@router.get("/{rule_id}/statistics", response_model=RuleStatisticsOut)
def gift_rule_statistics(rule_id: UUID, db: Session = Depends(get_db)):
    return gift_rule_service.get_rule_statistics(db, rule_id)


@public_router.get("/active", response_model=list[PublicGiftRuleOut])
def list_active_gift_rules(db: Session = Depends(get_db)):
    return gift_rule_service.get_active_rules(db)
