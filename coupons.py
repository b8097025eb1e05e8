"""
Coupon validation shim.

Eligibility and discount math happen in the `validate_coupon` procedure;
this side only forwards the code and the cart total and remembers the
verdict for the rest of the checkout session.
"""
import logging
from typing import Optional

from errors import CommerceError, ValidationError
from gateway import DataGateway
from schemas import CouponValidation

logger = logging.getLogger(__name__)


class CouponValidator:
    def __init__(self, gateway: DataGateway):
        self.gateway = gateway
        self.validating = False

    def validate(self, code: str, cart_total: float) -> CouponValidation:
        if not code or not code.strip():
            raise ValidationError("Please enter a coupon code")
        self.validating = True
        try:
            result = self.gateway.rpc("validate_coupon", code=code.strip().upper(), cart_total=cart_total)
            if isinstance(result, dict):
                result = CouponValidation(**result)
            return result
        except CommerceError as e:
            logger.error("Error validating coupon: %s", e.message)
            return CouponValidation(valid=False, error="Failed to validate coupon")
        finally:
            self.validating = False


class AppliedCoupon:
    """The coupon held by one checkout session; never persisted.

    The discount is not recomputed when the cart changes after it was applied.
    """

    def __init__(self):
        self.validation: Optional[CouponValidation] = None

    def apply(self, validation: CouponValidation) -> None:
        if not validation.valid:
            raise ValidationError(validation.error or "This coupon cannot be applied", title="Invalid Coupon")
        self.validation = validation

    def remove(self) -> None:
        self.validation = None

    @property
    def active(self) -> bool:
        return self.validation is not None

    @property
    def code(self) -> Optional[str]:
        return self.validation.code if self.validation else None

    @property
    def discount_amount(self) -> float:
        if self.validation is None:
            return 0.0
        return float(self.validation.discount_amount or 0)
