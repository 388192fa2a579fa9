import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from typing import Any, Callable, Generator

# Override settings for tests before importing shop modules
TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_STRIPE_WEBHOOK_SECRET = "whsec_test_mock"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_mock"
os.environ["STRIPE_WEBHOOK_SECRET"] = TEST_STRIPE_WEBHOOK_SECRET
os.environ["BKASH_BASE_URL"] = "https://bkash.test/v1.2.0-beta"
os.environ["BKASH_APP_KEY"] = "bkash_app_key"
os.environ["BKASH_APP_SECRET"] = "bkash_app_secret"
os.environ["BKASH_USERNAME"] = "bkash_user"
os.environ["BKASH_PASSWORD"] = "bkash_pass"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shop.services.auth_service import create_access_token, hash_password
from shop.main import app
from shop.models import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentStatus,
    Product,
    User,
    UserRole,
)
from shop.models.database import Base, get_db
from shop.services import payment_gateways
from shop.services.payment_provider import (
    InitiateResult,
    PaymentProvider,
    ProviderName,
    RefundResult,
    VerificationResult,
)

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeProvider(PaymentProvider):
    """In-memory provider; tests set the canned results and inspect ``calls``."""

    currency = "usd"

    def __init__(self, name: ProviderName = ProviderName.STRIPE):
        self.name = name
        self.initiate_result = InitiateResult(
            ok=True,
            external_payment_id="fake_pay_1",
            client_secret="fake_pay_1_secret",
        )
        self.verification = VerificationResult(
            verified=True,
            status="succeeded",
            external_transaction_id="fake_trx_1",
            amount=Decimal("30.00"),
        )
        self.refund_result = RefundResult(ok=True, refund_id="fake_refund_1")
        self.calls: list[tuple[Any, ...]] = []

    def initiate(self, order_id, amount, currency, metadata=None):
        self.calls.append(("initiate", order_id, amount, currency))
        return self.initiate_result

    def verify(self, external_payment_id):
        self.calls.append(("verify", external_payment_id))
        return self.verification

    def refund(self, external_payment_id, amount=None):
        self.calls.append(("refund", external_payment_id, amount))
        return self.refund_result


def sign_stripe_payload(
    payload: bytes,
    secret: str = TEST_STRIPE_WEBHOOK_SECRET,
    timestamp: int | None = None,
) -> str:
    """Build a stripe-signature header the way Stripe does."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event_payload(
    event_type: str,
    intent_id: str,
    amount: int = 3000,
    status: str = "succeeded",
    event_id: str = "evt_test_1",
    last_payment_error: dict[str, Any] | None = None,
) -> bytes:
    intent: dict[str, Any] = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "status": status,
    }
    if last_payment_error is not None:
        intent["last_payment_error"] = last_payment_error
    return json.dumps(
        {"id": event_id, "type": event_type, "data": {"object": intent}}
    ).encode("utf-8")


@pytest.fixture(autouse=True)
def reset_payment_providers() -> Generator[None, None, None]:
    """Every test starts with an empty provider cache."""
    payment_gateways.reset()
    yield
    payment_gateways.reset()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_user(db: Session, email: str, name: str, role: UserRole) -> User:
    user = User(
        email=email,
        name=name,
        hashed_password=hash_password("testpassword123"),
        role=role.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test customer."""
    return _create_user(db, "test@example.com", "Test User", UserRole.USER)


@pytest.fixture
def test_user2(db: Session) -> User:
    """Create a second test customer."""
    return _create_user(db, "test2@example.com", "Test User 2", UserRole.USER)


@pytest.fixture
def admin_user(db: Session) -> User:
    return _create_user(db, "admin@example.com", "Admin", UserRole.ADMIN)


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Get auth headers with token."""
    return {"Authorization": f"Bearer {create_access_token(test_user)}"}


@pytest.fixture
def auth_headers2(test_user2: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(test_user2)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin_user)}"}


@pytest.fixture
def make_product(db: Session) -> Callable[..., Product]:
    def _make(
        name: str = "Widget",
        price: str = "10.00",
        stock: int = 10,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            slug=name.lower().replace(" ", "-"),
            price=Decimal(price),
            stock=stock,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def test_product(make_product) -> Product:
    """Active product: price 10.00, stock 10."""
    return make_product()


@pytest.fixture
def make_order(db: Session, test_user: User) -> Callable[..., Order]:
    """Build an order from ``(product, quantity)`` pairs without touching stock."""

    def _make(
        *lines: tuple[Product, int],
        user: User | None = None,
        status: OrderStatus = OrderStatus.PENDING,
    ) -> Order:
        order = Order(
            user_id=(user or test_user).id,
            status=status.value,
            total_amount=sum((Decimal(p.price) * qty for p, qty in lines), Decimal("0")),
        )
        for product, quantity in lines:
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    price=product.price,
                    subtotal=Decimal(product.price) * quantity,
                )
            )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def make_payment(db: Session) -> Callable[..., Payment]:
    def _make(
        order: Order,
        transaction_id: str | None = "pi_test_123",
        status: PaymentStatus = PaymentStatus.PENDING,
        provider: ProviderName = ProviderName.STRIPE,
    ) -> Payment:
        payment = Payment(
            order_id=order.id,
            provider=provider.value,
            transaction_id=transaction_id,
            status=status.value,
        )
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    return _make


@pytest.fixture
def pending_payment(make_order, make_payment, test_product) -> Payment:
    """PENDING Stripe payment for an order of 3 x test_product (total 30.00)."""
    order = make_order((test_product, 3))
    return make_payment(order)


@pytest.fixture
def fake_provider(monkeypatch) -> FakeProvider:
    """Register a FakeProvider as the cached Stripe provider."""
    provider = FakeProvider(ProviderName.STRIPE)
    monkeypatch.setitem(payment_gateways._providers, ProviderName.STRIPE, provider)
    return provider


@pytest.fixture
def fake_bkash_provider(monkeypatch) -> FakeProvider:
    provider = FakeProvider(ProviderName.BKASH)
    provider.currency = "BDT"
    provider.initiate_result = InitiateResult(
        ok=True,
        external_payment_id="TR0011bkash1",
        redirect_url="https://sandbox.payment.bkash.com/redirect/TR0011bkash1",
    )
    monkeypatch.setitem(payment_gateways._providers, ProviderName.BKASH, provider)
    return provider


@pytest.fixture
def stripe_signer() -> Callable[..., str]:
    return sign_stripe_payload


@pytest.fixture
def stripe_event() -> Callable[..., bytes]:
    return stripe_event_payload
