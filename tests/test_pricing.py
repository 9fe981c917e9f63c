"""Tests for discount, shipping and coupon validation rules."""

from datetime import datetime, timedelta, timezone

import pytest

from storefront.models.coupon import Coupon, CouponUsage
from storefront.services.pricing import (
    CouponError,
    ShippingRule,
    compute_discount,
    compute_shipping,
    validate_coupon,
)
from tests.conftest import create_coupon, create_user


def _coupon(type="PERCENTAGE", value=10, max_discount_cents=None):
    return Coupon(code="X", type=type, value=value, max_discount_cents=max_discount_cents)


class TestComputeDiscount:
    def test_percentage_capped(self):
        # 20% of 1000.00 is 200.00, capped at 150.00
        assert compute_discount(_coupon(value=20, max_discount_cents=15000), 100000) == 15000

    def test_percentage_under_cap(self):
        assert compute_discount(_coupon(value=10, max_discount_cents=15000), 100000) == 10000

    def test_percentage_without_cap(self):
        assert compute_discount(_coupon(value=10), 30000) == 3000

    def test_percentage_rounds_half_up(self):
        # 15% of 0.99 = 0.1485 -> 0.15
        assert compute_discount(_coupon(value=15), 99) == 15

    def test_flat_clamped_to_subtotal(self):
        assert compute_discount(_coupon(type="FLAT", value=200000), 100000) == 100000

    def test_flat_below_subtotal(self):
        assert compute_discount(_coupon(type="FLAT", value=5000), 100000) == 5000

    def test_zero_subtotal(self):
        assert compute_discount(_coupon(type="FLAT", value=5000), 0) == 0


class TestComputeShipping:
    def test_free_at_threshold(self):
        assert compute_shipping(ShippingRule(5000, 50000), 50000) == 0

    def test_charged_below_threshold(self):
        assert compute_shipping(ShippingRule(5000, 50000), 27000) == 5000

    def test_no_threshold_always_charged(self):
        assert compute_shipping(ShippingRule(5000, None), 10_000_000) == 5000

    def test_unset_charge_means_free(self):
        assert compute_shipping(ShippingRule(None, 50000), 100) == 0


class TestValidateCoupon:
    async def test_valid_code_is_case_insensitive(self, db):
        await create_coupon(db, code="SAVE10", value=10)
        coupon, discount = await validate_coupon(db, code=" save10 ", subtotal_cents=30000, user_id=None)
        assert coupon.code == "SAVE10"
        assert discount == 3000

    async def test_unknown_code(self, db):
        with pytest.raises(CouponError, match="Invalid coupon code"):
            await validate_coupon(db, code="NOPE", subtotal_cents=30000, user_id=None)

    async def test_inactive(self, db):
        coupon = await create_coupon(db, code="OFF")
        coupon.is_active = False
        await db.commit()
        with pytest.raises(CouponError, match="Invalid coupon code"):
            await validate_coupon(db, code="OFF", subtotal_cents=30000, user_id=None)

    async def test_expired(self, db):
        await create_coupon(db, code="OLD", expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        with pytest.raises(CouponError, match="expired"):
            await validate_coupon(db, code="OLD", subtotal_cents=30000, user_id=None)

    async def test_not_yet_expired(self, db):
        await create_coupon(db, code="NEW", expires_at=datetime.now(timezone.utc) + timedelta(days=1))
        _, discount = await validate_coupon(db, code="NEW", subtotal_cents=30000, user_id=None)
        assert discount == 3000

    async def test_minimum_order_value(self, db):
        await create_coupon(db, code="BIG", min_order_value_cents=50000)
        with pytest.raises(CouponError, match="Minimum order value"):
            await validate_coupon(db, code="BIG", subtotal_cents=49999, user_id=None)

    async def test_global_limit_reached(self, db):
        coupon = await create_coupon(db, code="ONCE", global_usage_limit=1)
        coupon.total_used = 1
        await db.commit()
        with pytest.raises(CouponError, match="usage limit"):
            await validate_coupon(db, code="ONCE", subtotal_cents=30000, user_id=None)

    async def test_per_user_limit_reached(self, db):
        user = await create_user(db)
        other = await create_user(db, email="other@example.com")
        coupon = await create_coupon(db, code="MINE", per_user_limit=1)
        db.add(CouponUsage(coupon_id=coupon.id, user_id=user.id, used_count=1))
        await db.commit()

        with pytest.raises(CouponError, match="already used this coupon 1 time$"):
            await validate_coupon(db, code="MINE", subtotal_cents=30000, user_id=user.id)

        _, discount = await validate_coupon(db, code="MINE", subtotal_cents=30000, user_id=other.id)
        assert discount == 3000
