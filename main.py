import os
import logging
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import database
from database import now_utc
from cart import CartManager, get_total
from catalog import get_product, list_products
from checkout import CheckoutOrchestrator
from coupons import CouponValidator
from errors import AuthenticationRequired, CommerceError, InvalidTransition, ValidationError
from gateway import DataGateway, get_gateway
from orders import OrderService
from payments import PAYMENT_DELAY_SECONDS, PaymentProvider, PaymentSimulator, SimulatedPaymentProvider
from profiles import ProfileService
from schemas import PAYMENT_METHODS, Coupon, CouponValidation, ShippingAddress
from tracking import build_tracking

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Study Store API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ADMIN_KEY = os.getenv("ADMIN_KEY", "demo-admin-key")

# ---------------------- Errors & Dependencies ----------------------

@app.exception_handler(CommerceError)
async def commerce_error_handler(request: Request, exc: CommerceError):
    body = {"title": exc.title, "detail": exc.message}
    code = getattr(exc, "code", None)
    if code:
        body["code"] = code
    return JSONResponse(status_code=exc.status_code, content=body)


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise AuthenticationRequired("Please login to continue")
    return x_user_id


def require_admin(x_admin_key: Optional[str] = Header(None)):
    if x_admin_key != ADMIN_KEY:
        raise HTTPException(401, "Unauthorized")


def get_payment_provider() -> PaymentProvider:
    return SimulatedPaymentProvider()


def get_payment_delay() -> float:
    return PAYMENT_DELAY_SECONDS

# ---------------------- Models ----------------------

class AddToCartBody(BaseModel):
    product_id: str
    quantity: int = 1

class QuantityBody(BaseModel):
    quantity: int

class CouponCheckBody(BaseModel):
    code: str
    cart_total: Optional[float] = None

class CheckoutBody(BaseModel):
    address: ShippingAddress
    payment_method: str = "COD"
    coupon_code: Optional[str] = None

class XPBody(BaseModel):
    xp: int

class BatchBody(BaseModel):
    institute_id: Optional[str] = None
    batch_id: Optional[str] = None

class StatusBody(BaseModel):
    status: str
    notes: Optional[str] = None

class CouponBody(BaseModel):
    code: str
    discount_type: Literal["percentage", "flat"]
    discount_value: float
    min_purchase_amount: float = 0
    max_discount_amount: Optional[float] = None
    usage_limit: Optional[int] = None
    is_active: bool = True
    expires_at: Optional[datetime] = None

# ---------------------- Root & Health ----------------------

@app.get("/")
def read_root():
    return {"message": "Study Store API running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    db = database.db
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response

@app.get("/schema")
def get_schema():
    from inspect import getmembers, isclass
    import schemas as s
    return {
        name.lower(): cls.model_json_schema()
        for name, cls in getmembers(s)
        if isclass(cls) and issubclass(cls, BaseModel) and cls.__module__ == s.__name__
    }

# ---------------------- Products ----------------------

@app.get("/products")
def products(category: Optional[str] = None, gw: DataGateway = Depends(get_gateway)):
    return list_products(gw, category)

@app.get("/products/{pid}")
def product_detail(pid: str, gw: DataGateway = Depends(get_gateway)):
    return get_product(gw, pid)

# ---------------------- Cart ----------------------

@app.get("/cart")
def cart_items(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    lines = CartManager(gw).get_cart_lines(user_id)
    return {"items": lines, "total": get_total(lines), "count": len(lines)}

@app.get("/cart/count")
def cart_count(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return {"count": CartManager(gw).count(user_id)}

@app.post("/cart/add")
def add_to_cart(body: AddToCartBody, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    product = get_product(gw, body.product_id)
    line = CartManager(gw).add_to_cart(user_id, product, body.quantity)
    return line

@app.patch("/cart/{line_id}")
def update_cart_line(line_id: str, body: QuantityBody, user_id: str = Depends(current_user),
                     gw: DataGateway = Depends(get_gateway)):
    manager = CartManager(gw)
    if body.quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    gw.select_one("cartline", {"id": line_id, "user_id": user_id})
    return manager.update_quantity(line_id, body.quantity)

@app.delete("/cart/{line_id}")
def remove_cart_line(line_id: str, confirm: bool = Query(False), user_id: str = Depends(current_user),
                     gw: DataGateway = Depends(get_gateway)):
    gw.select_one("cartline", {"id": line_id, "user_id": user_id})
    CartManager(gw).remove_from_cart(line_id, confirmed=confirm)
    return {"ok": True}

# ---------------------- Coupons & Checkout ----------------------

@app.post("/coupons/validate", response_model=CouponValidation)
def validate_coupon(body: CouponCheckBody, user_id: str = Depends(current_user),
                    gw: DataGateway = Depends(get_gateway)):
    cart_total = body.cart_total
    if cart_total is None:
        cart_total = get_total(CartManager(gw).get_cart_lines(user_id))
    return CouponValidator(gw).validate(body.code, cart_total)

@app.post("/checkout/place-order")
def place_order(body: CheckoutBody, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    if body.payment_method not in PAYMENT_METHODS:
        raise ValidationError("Please select a payment method")
    coupon_code, discount = None, 0.0
    if body.coupon_code and body.coupon_code.strip():
        # the discount always comes from a fresh verdict on the live cart
        lines = CartManager(gw).get_cart_lines(user_id)
        if lines:
            verdict = CouponValidator(gw).validate(body.coupon_code, get_total(lines))
            if not verdict.valid:
                raise ValidationError(verdict.error or "This coupon cannot be applied", title="Invalid Coupon")
            coupon_code, discount = verdict.code, float(verdict.discount_amount or 0)
    order = CheckoutOrchestrator(gw).place_order(
        user_id, body.address, body.payment_method,
        coupon_code=coupon_code, discount_amount=discount,
    )
    return order

# ---------------------- Payments (simulated) ----------------------

@app.post("/payments/{order_id}/process")
def process_payment(order_id: str, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway),
                    provider: PaymentProvider = Depends(get_payment_provider),
                    delay: float = Depends(get_payment_delay)):
    order = OrderService(gw).get_order(order_id, user_id=user_id)
    retrying = order.status == "cancelled" and order.payment_status == "failed"
    if order.status != "placed" and not retrying:
        raise InvalidTransition("Payment already processed for this order")
    simulator = PaymentSimulator(gw, order, provider=provider, delay=delay)
    state = simulator.process()
    return {"state": state, "order": simulator.order}

# ---------------------- Orders ----------------------

@app.get("/orders")
def my_orders(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return OrderService(gw).list_orders(user_id)

@app.get("/orders/{order_id}")
def order_detail(order_id: str, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    service = OrderService(gw)
    order = service.get_order(order_id, user_id=user_id)
    return {"order": order, "history": service.get_status_history(order_id)}

@app.get("/orders/{order_id}/tracking")
def order_tracking(order_id: str, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    service = OrderService(gw)
    order = service.get_order(order_id, user_id=user_id)
    return build_tracking(order, service.get_status_history(order_id))

# ---------------------- Profile & Leaderboard ----------------------

@app.get("/profile")
def profile(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).get_profile(user_id)

@app.post("/profile/refresh")
def refresh_profile(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).refresh(user_id)

@app.post("/profile/batch")
def select_batch(body: BatchBody, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).select_batch(user_id, body.institute_id, body.batch_id)

@app.post("/profile/xp")
def award_xp(body: XPBody, user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).award_xp(user_id, body.xp)

@app.get("/leaderboard")
def leaderboard(limit: int = Query(100, ge=1, le=1000), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).leaderboard(limit)

@app.get("/leaderboard/me")
def my_rank(user_id: str = Depends(current_user), gw: DataGateway = Depends(get_gateway)):
    return ProfileService(gw).user_rank(user_id)

# ---------------------- Admin ----------------------

@app.post("/admin/coupons", dependencies=[Depends(require_admin)])
def admin_add_coupon(body: CouponBody, gw: DataGateway = Depends(get_gateway)):
    coupon = Coupon(**{**body.model_dump(), "code": body.code.strip().upper()})
    if gw.count("coupon", {"code": coupon.code}):
        raise HTTPException(400, "Coupon code already exists")
    row = gw.insert("coupon", coupon.model_dump(exclude={"id"}))
    return {"_id": row["id"], "code": coupon.code}

@app.patch("/admin/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def admin_update_order_status(order_id: str, body: StatusBody, gw: DataGateway = Depends(get_gateway)):
    return OrderService(gw).update_status(order_id, body.status, body.notes)

# ---------------------- Seed Demo Data ----------------------

@app.post("/admin/seed", dependencies=[Depends(require_admin)])
def seed(gw: DataGateway = Depends(get_gateway)):
    if gw.count("product") == 0:
        demo = []
        for i, category in enumerate(["book", "notes", "stationary"] * 4, start=1):
            demo.append({
                "title": f"Study {category.title()} {i}",
                "description": "Curated material for exam preparation.",
                "category": category,
                "price": 99 + i * 50,
                "original_price": 149 + i * 50 if i % 2 else None,
                "image_url": f"https://picsum.photos/seed/study{i}/600/400",
                "stock_quantity": 25,
                "is_available": True,
                "approval_status": "approved",
            })
        gw.insert_many("product", demo)
        logger.info("Seeded %d demo products", len(demo))
    if gw.count("coupon") == 0:
        gw.insert_many("coupon", [
            Coupon(code="WELCOME20", discount_type="percentage", discount_value=20,
                   min_purchase_amount=200, max_discount_amount=100).model_dump(exclude={"id"}),
            Coupon(code="FLAT50", discount_type="flat", discount_value=50, min_purchase_amount=300,
                   usage_limit=500, expires_at=now_utc() + timedelta(days=90)).model_dump(exclude={"id"}),
        ])
    return {"ok": True}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
