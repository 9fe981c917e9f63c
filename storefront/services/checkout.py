from __future__ import annotations

from collections import defaultdict
from typing import Protocol, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.order_item import OrderItem
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User
from storefront.schemas.checkout import AddressIn, CheckoutItemIn
from storefront.services.order_numbers import allocate_order_number
from storefront.services.pricing import compute_shipping, validate_coupon
from storefront.services.site_config import get_shipping_rule

log = structlog.get_logger(__name__)


class CheckoutError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class PaymentGateway(Protocol):
    async def create_order(
        self,
        *,
        amount_cents: int,
        currency: str,
        receipt: str,
        notes: dict | None = None,
    ) -> str: ...


async def _load_variants(
    db: AsyncSession,
    product_ids: list[int],
) -> dict[tuple[int, str], tuple[ProductVariant, Product]]:
    res = await db.execute(
        select(ProductVariant, Product)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(ProductVariant.product_id.in_(product_ids))
    )
    return {(int(v.product_id), v.label): (v, p) for v, p in res.all()}


async def _load_products(db: AsyncSession, product_ids: list[int]) -> dict[int, Product]:
    res = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    return {int(p.id): p for p in res.scalars().all()}


async def price_items(db: AsyncSession, items: Sequence[CheckoutItemIn]) -> int:
    """
    Re-price the cart from stored variant prices and check stock.

    Returns the subtotal in cents. Nothing is reserved; stock is only
    deducted once payment succeeds.
    """
    product_ids = sorted({int(i.product_id) for i in items})
    products = await _load_products(db, product_ids)
    variants = await _load_variants(db, product_ids)

    requested: dict[tuple[int, str], int] = defaultdict(int)
    for item in items:
        requested[(int(item.product_id), item.variant_label)] += int(item.quantity)

    subtotal = 0
    for item in items:
        product = products.get(int(item.product_id))
        if product is None or not product.is_active:
            raise CheckoutError(f"Product not found: {item.product_id}", status_code=404)

        key = (int(item.product_id), item.variant_label)
        found = variants.get(key)
        if found is None:
            raise CheckoutError(f"Variant not found for {product.name}", status_code=404)

        variant, _ = found
        if variant.stock_quantity < requested[key]:
            raise CheckoutError(
                f"Insufficient stock for {product.name} ({variant.label}). "
                f"Available: {variant.stock_quantity}",
                status_code=409,
            )

        if variant.price_cents != item.unit_price_cents:
            raise CheckoutError(f"Price mismatch for {product.name}", status_code=409)

        subtotal += int(variant.price_cents) * int(item.quantity)

    return subtotal


async def initiate_order(
    db: AsyncSession,
    *,
    user: User,
    items: Sequence[CheckoutItemIn],
    shipping_address: AddressIn,
    billing_address: AddressIn | None,
    coupon_code: str | None,
    gateway: PaymentGateway,
) -> Order:
    """
    Price the cart server-side, open a gateway order and persist a
    (PENDING, PENDING) order pointing at it.

    Any rule violation raises before anything is written.
    """
    if not items:
        raise CheckoutError("At least one item is required.")

    subtotal = await price_items(db, items)

    discount = 0
    normalized_code: str | None = None
    if coupon_code and coupon_code.strip():
        coupon, discount = await validate_coupon(
            db,
            code=coupon_code,
            subtotal_cents=subtotal,
            user_id=user.id,
        )
        normalized_code = coupon.code

    discounted_subtotal = subtotal - discount

    rule = await get_shipping_rule(db)
    shipping = compute_shipping(rule, discounted_subtotal)

    total = discounted_subtotal + shipping

    order_number = await allocate_order_number(db)

    razorpay_order_id = await gateway.create_order(
        amount_cents=total,
        currency=settings.CURRENCY,
        receipt=order_number,
        notes={"user_id": str(user.id), "order_number": order_number},
    )

    shipping_data = shipping_address.model_dump(mode="json")
    billing_data = billing_address.model_dump(mode="json") if billing_address else shipping_data

    try:
        order = Order(
            order_number=order_number,
            user_id=user.id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal_cents=subtotal,
            discount_cents=discount,
            shipping_cents=shipping,
            total_cents=total,
            currency=settings.CURRENCY,
            coupon_code=normalized_code,
            razorpay_order_id=razorpay_order_id,
            payment_meta={},
            shipping_address=shipping_data,
            billing_address=billing_data,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    variant_label=item.variant_label,
                    name=item.name,
                    image=item.image,
                    unit_price_cents=item.unit_price_cents,
                    quantity=item.quantity,
                )
                for item in items
            ],
        )
        db.add(order)
        await db.commit()
    except Exception:
        await db.rollback()
        log.error("order_persist_failed", order_number=order_number, razorpay_order_id=razorpay_order_id)
        raise

    await db.refresh(order)
    log.info(
        "order_initiated",
        order_id=order.id,
        order_number=order_number,
        razorpay_order_id=razorpay_order_id,
        user_id=user.id,
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        total=total,
        coupon_code=normalized_code,
    )
    return order
