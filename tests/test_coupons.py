from datetime import timedelta

import pytest

from coupons import AppliedCoupon, CouponValidator
from database import now_utc
from errors import RemoteCallError, ValidationError
from procedures import validate_coupon
from schemas import CouponValidation


def test_percentage_discount_is_capped(db, make_coupon):
    make_coupon(code="CAP100", discount_value=20, max_discount_amount=100)
    result = validate_coupon(db, "CAP100", 1000)
    assert result.valid
    assert result.discount_amount == 100
    assert result.final_total == 900
    assert result.original_total == 1000


def test_percentage_discount_below_cap(db, make_coupon):
    make_coupon(code="CAP100", discount_value=20, max_discount_amount=100)
    assert validate_coupon(db, "CAP100", 300).discount_amount == 60


def test_flat_discount_never_exceeds_total(db, make_coupon):
    make_coupon(code="FLAT50", discount_type="flat", discount_value=50)
    assert validate_coupon(db, "FLAT50", 600).discount_amount == 50
    small = validate_coupon(db, "FLAT50", 30)
    assert small.discount_amount == 30
    assert small.final_total == 0


def test_code_matching_is_case_insensitive(db, make_coupon):
    make_coupon(code="WELCOME")
    result = validate_coupon(db, "  welcome ", 500)
    assert result.valid
    assert result.code == "WELCOME"


@pytest.mark.parametrize("overrides, total, error", [
    ({"is_active": False}, 500, "Invalid coupon code"),
    ({"expires_at": now_utc() - timedelta(days=1)}, 500, "Coupon has expired"),
    ({"usage_limit": 5, "used_count": 5}, 500, "Coupon usage limit reached"),
    ({"min_purchase_amount": 499}, 300, "Minimum purchase of ₹499.00 required"),
])
def test_ineligible_coupons(db, make_coupon, overrides, total, error):
    make_coupon(code="RULES", **overrides)
    result = validate_coupon(db, "RULES", total)
    assert result.valid is False
    assert result.error == error


def test_unknown_coupon(db):
    assert validate_coupon(db, "NOPE", 100).error == "Invalid coupon code"


def test_future_expiry_is_still_valid(db, make_coupon):
    make_coupon(code="LATER", expires_at=now_utc() + timedelta(days=3))
    assert validate_coupon(db, "LATER", 100).valid


def test_validator_uppercases_and_calls_procedure_once(gateway, make_coupon, monkeypatch):
    make_coupon(code="SAVE20")
    calls = []
    real_rpc = gateway.rpc

    def spy(name, **params):
        calls.append((name, params))
        return real_rpc(name, **params)

    monkeypatch.setattr(gateway, "rpc", spy)
    result = CouponValidator(gateway).validate("save20", 500)
    assert result.valid
    assert calls == [("validate_coupon", {"code": "SAVE20", "cart_total": 500})]


def test_validator_rejects_blank_code_locally(gateway):
    with pytest.raises(ValidationError):
        CouponValidator(gateway).validate("   ", 500)


def test_validator_hides_remote_failures(gateway, monkeypatch):
    def broken(name, **params):
        raise RemoteCallError("function validate_coupon does not exist")

    monkeypatch.setattr(gateway, "rpc", broken)
    validator = CouponValidator(gateway)
    result = validator.validate("SAVE20", 500)
    assert result.valid is False
    assert result.error == "Failed to validate coupon"
    assert validator.validating is False


def test_applied_coupon_holds_discount_until_removed():
    held = AppliedCoupon()
    assert held.discount_amount == 0
    held.apply(CouponValidation(valid=True, code="SAVE20", discount_amount=100, final_total=900))
    assert held.code == "SAVE20"
    assert held.discount_amount == 100
    held.remove()
    assert not held.active
    assert held.discount_amount == 0


def test_applied_coupon_refuses_invalid_verdict():
    held = AppliedCoupon()
    with pytest.raises(ValidationError) as exc:
        held.apply(CouponValidation(valid=False, error="Coupon has expired"))
    assert exc.value.title == "Invalid Coupon"
    assert not held.active
