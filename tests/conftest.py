import mongomock
import pytest
from fastapi.testclient import TestClient

from gateway import DataGateway, get_gateway
from schemas import Coupon, Product, ShippingAddress


@pytest.fixture
def db():
    return mongomock.MongoClient().study_store


@pytest.fixture
def gateway(db):
    return DataGateway(db)


@pytest.fixture
def make_product(gateway):
    def _make(**overrides):
        row = {
            "title": "Physics Notes",
            "category": "notes",
            "price": 199.0,
            "stock_quantity": 10,
            "is_available": True,
            "approval_status": "approved",
        }
        row.update(overrides)
        return Product(**gateway.insert("product", row))
    return _make


@pytest.fixture
def make_coupon(gateway):
    def _make(**overrides):
        fields = {"code": "SAVE20", "discount_type": "percentage", "discount_value": 20}
        fields.update(overrides)
        coupon = Coupon(**fields)
        return Coupon(**gateway.insert("coupon", coupon.model_dump(exclude={"id"})))
    return _make


@pytest.fixture
def address():
    return ShippingAddress(
        full_name="Asha Rao",
        phone="9876543210",
        address="12 MG Road, Indiranagar",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
    )


@pytest.fixture
def client(gateway):
    import main
    main.app.dependency_overrides[get_gateway] = lambda: gateway
    main.app.dependency_overrides[main.get_payment_delay] = lambda: 0
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": "user-1"}
