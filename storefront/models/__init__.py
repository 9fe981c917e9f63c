# storefront/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from storefront.models.user import User  # noqa: F401
from storefront.models.product import Product, ProductVariant  # noqa: F401

from storefront.models.coupon import Coupon, CouponUsage  # noqa: F401
from storefront.models.site_config import SiteConfig  # noqa: F401

from storefront.models.order import Order, OrderStatus, PaymentStatus  # noqa: F401
from storefront.models.order_item import OrderItem  # noqa: F401
from storefront.models.order_number import OrderNumberCounter  # noqa: F401
