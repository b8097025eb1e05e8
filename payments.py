"""
Payment simulation.

`PaymentSimulator` drives one order through

    pending -> processing -> success | failed        (failed -> pending on retry)

and writes the outcome back to the order plus exactly one history row. The
outcome itself comes from a `PaymentProvider`; `SimulatedPaymentProvider`
fakes one (COD always succeeds, anything else succeeds at `success_rate`).
A real gateway integration replaces the provider, not the simulator.
"""
import logging
import os
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Literal, Optional

from pydantic import BaseModel

from errors import CommerceError, InvalidTransition
from gateway import DataGateway
from schemas import Order

logger = logging.getLogger(__name__)

PAYMENT_DELAY_SECONDS = float(os.getenv("PAYMENT_DELAY_SECONDS", "3"))
UPI_SUCCESS_RATE = float(os.getenv("UPI_SUCCESS_RATE", "0.9"))

PENDING = "pending"
PROCESSING = "processing"
SUCCESS = "success"
FAILED = "failed"


class PaymentOutcome(BaseModel):
    success: bool
    payment_status: Literal["pending", "success", "failed"]
    message: str


class PaymentProvider(ABC):
    @abstractmethod
    def charge(self, order: Order) -> PaymentOutcome:
        ...


class SimulatedPaymentProvider(PaymentProvider):
    def __init__(self, rng: Optional[random.Random] = None, success_rate: float = UPI_SUCCESS_RATE):
        self.rng = rng or random.Random()
        self.success_rate = success_rate

    def charge(self, order: Order) -> PaymentOutcome:
        if order.payment_method == "COD":
            # cash is collected on delivery
            return PaymentOutcome(success=True, payment_status="pending", message="Payment pending (COD)")
        if self.rng.random() < self.success_rate:
            return PaymentOutcome(success=True, payment_status="success", message="Payment successful")
        return PaymentOutcome(success=False, payment_status="failed", message="Payment failed")


class PaymentSimulator:
    def __init__(self, gateway: DataGateway, order: Order, provider: Optional[PaymentProvider] = None,
                 delay: float = PAYMENT_DELAY_SECONDS, sleep: Callable[[float], None] = time.sleep):
        self.gateway = gateway
        self.order = order
        self.provider = provider or SimulatedPaymentProvider()
        self.delay = delay
        self.sleep = sleep
        self.state = PENDING
        self.processing = False
        self.outcome: Optional[PaymentOutcome] = None

    def process(self) -> str:
        if self.state != PENDING:
            raise InvalidTransition(f"Payment is {self.state}")
        self.state = PROCESSING
        self.processing = True
        try:
            if self.delay:
                self.sleep(self.delay)
            outcome = self.provider.charge(self.order)
            status = "confirmed" if outcome.success else "cancelled"
            row = self.gateway.update("order", {"id": self.order.id},
                                      {"payment_status": outcome.payment_status, "status": status})
            if row is None:
                raise InvalidTransition(f"Order {self.order.order_number} no longer exists")
            self.gateway.insert("orderstatushistory", {
                "order_id": self.order.id,
                "status": status,
                "notes": outcome.message,
            })
            self.order = Order(**row, items=self.order.items)
            self.outcome = outcome
            self.state = SUCCESS if outcome.success else FAILED
            logger.info("Order %s payment %s (%s)", self.order.order_number, self.state, self.order.payment_method)
            return self.state
        except CommerceError as e:
            logger.error("Payment processing error for %s: %s", self.order.order_number, e.message)
            self.state = FAILED
            raise
        finally:
            self.processing = False

    def retry(self) -> str:
        if self.state != FAILED:
            raise InvalidTransition(f"Payment is {self.state}")
        self.state = PENDING
        self.outcome = None
        return self.state
