from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import storefront.models  # noqa: F401

from storefront.core.config import settings
from storefront.core.logging import configure_logging

# Routers
from storefront.routers.checkout import router as checkout_router
from storefront.routers.webhooks import router as webhooks_router
from storefront.routers.orders import router as orders_router
from storefront.routers.coupons import router as coupons_router
from storefront.routers.site_config import router as site_config_router

from storefront.routers.admin_orders import router as admin_orders_router
from storefront.routers.admin_coupons import router as admin_coupons_router

configure_logging()

app = FastAPI(title="storefront")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Checkout & payment callbacks
app.include_router(checkout_router)
app.include_router(webhooks_router)

# Customer
app.include_router(orders_router)
app.include_router(coupons_router)
app.include_router(site_config_router)

# Admin
app.include_router(admin_orders_router)
app.include_router(admin_coupons_router)
