import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from storefront.db import engine, Base

from storefront.models.category import Category
from storefront.models.product import Product
from storefront.models.cart_item import CartItem
from storefront.models.gift_rule import GiftRule
from storefront.models.gift_condition import GiftCondition
from storefront.models.gift_product import GiftProduct
from storefront.models.gift_rule_usage import GiftRuleUsage
from storefront.models.voucher import Voucher
from storefront.models.order import Order
from storefront.models.order_item import OrderItem
from storefront.models.user_voucher import UserVoucher
from storefront.models.stock_movement import StockMovement
from storefront.models.site_config import SiteConfig

from storefront.routes.gift_rules import router as gift_rules_router, public_router as public_gift_rules_router
from storefront.routes.cart import router as cart_router
from storefront.routes.orders import router as orders_router, admin_router as admin_orders_router
from storefront.routes.products import router as products_router, categories_router
from storefront.routes.vouchers import router as vouchers_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Storefront")

# ─── CORS ─────────────────────────────────────────────────────────
cors_origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(products_router)
app.include_router(categories_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(admin_orders_router)
app.include_router(gift_rules_router)
app.include_router(public_gift_rules_router)
app.include_router(vouchers_router)


@app.get("/")
def read_root():
    return {"message": "Storefront is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
