"""Pytest fixtures for storefront tests."""

import hashlib
import hmac
import os

# Settings are read at import time, so the environment must be ready first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["DEFAULT_SHIPPING_CHARGE_CENTS"] = "5000"
os.environ["DEFAULT_FREE_SHIPPING_MIN_ORDER_CENTS"] = "50000"
os.environ["REVALIDATE_URLS"] = ""
os.environ["LOG_JSON"] = "false"
os.environ["ORDER_NUMBER_TIMEZONE"] = "UTC"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.core.db import create_all, get_db
from storefront.core.security import create_access_token
from storefront.integrations.razorpay_client import get_payment_client
from storefront.models.coupon import Coupon
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.order_item import OrderItem
from storefront.models.product import Product, ProductVariant
from storefront.models.user import User

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


def sign_payment(razorpay_order_id: str, razorpay_payment_id: str, secret: str = KEY_SECRET) -> str:
    message = f"{razorpay_order_id}|{razorpay_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def sign_webhook(raw_body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id=user.id, role=user.role)}"}


class FakeGateway:
    """Stands in for the Razorpay order API."""

    public_key = "rzp_test_key"

    def __init__(self):
        self.calls = []

    async def create_order(self, *, amount_cents, currency, receipt, notes=None):
        self.calls.append(
            {"amount_cents": amount_cents, "currency": currency, "receipt": receipt, "notes": notes}
        )
        return f"order_test_{len(self.calls):04d}"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    from storefront.main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_client] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


async def create_user(db, email="buyer@example.com", role="customer") -> User:
    user = User(email=email, full_name=email.split("@")[0], role=role, is_active=True)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_product(db, name="Almonds", variants=(("500g", 40000, 10),)) -> Product:
    product = Product(
        name=name,
        slug=name.lower().replace(" ", "-"),
        is_active=True,
        variants=[ProductVariant(label=label, price_cents=price, stock_quantity=stock) for label, price, stock in variants],
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


async def create_coupon(db, code="SAVE10", type="PERCENTAGE", value=10, **kwargs) -> Coupon:
    coupon = Coupon(code=code, type=type, value=value, total_used=0, is_active=True, **kwargs)
    db.add(coupon)
    await db.commit()
    await db.refresh(coupon)
    return coupon


async def create_pending_order(
    db,
    user: User,
    lines,
    *,
    coupon_code=None,
    razorpay_order_id="order_seed_0001",
    order_number="ORD-20260101-001",
    status=OrderStatus.PENDING.value,
    payment_status=PaymentStatus.PENDING.value,
) -> Order:
    """lines: iterable of (product, variant_label, quantity)."""
    items = []
    subtotal = 0
    for product, label, qty in lines:
        variant = next(v for v in product.variants if v.label == label)
        subtotal += variant.price_cents * qty
        items.append(
            OrderItem(
                product_id=product.id,
                variant_label=label,
                name=product.name,
                unit_price_cents=variant.price_cents,
                quantity=qty,
            )
        )

    order = Order(
        order_number=order_number,
        user_id=user.id,
        status=status,
        payment_status=payment_status,
        subtotal_cents=subtotal,
        discount_cents=0,
        shipping_cents=0,
        total_cents=subtotal,
        currency="INR",
        coupon_code=coupon_code,
        razorpay_order_id=razorpay_order_id,
        payment_meta={},
        shipping_address={},
        billing_address={},
        items=items,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)
    return order


async def stock_of(db, product_id: int, label: str) -> int:
    res = await db.execute(
        select(ProductVariant.stock_quantity).where(
            ProductVariant.product_id == product_id,
            ProductVariant.label == label,
        )
    )
    return int(res.scalar_one())


async def order_state(db, order_id: int) -> tuple:
    res = await db.execute(
        select(Order.status, Order.payment_status, Order.needs_review).where(Order.id == order_id)
    )
    row = res.one_or_none()
    return tuple(row) if row is not None else None


async def coupon_counts(db, code: str) -> int:
    res = await db.execute(select(Coupon.total_used).where(Coupon.code == code))
    return int(res.scalar_one())
