"""
Stored procedures run next to the data.

Each procedure takes the MongoDB database as its first argument and is
reached through `DataGateway.rpc(name, **params)`. Anything that must be
atomic (counters, usage and XP increments) is a single server-side update.
"""
import logging
from datetime import timezone
from typing import List

from pymongo import ReturnDocument

from database import now_utc, to_str_id
from errors import NotFoundError
from schemas import CouponValidation, LeaderboardEntry

logger = logging.getLogger(__name__)


def _invalid(error: str) -> CouponValidation:
    return CouponValidation(valid=False, error=error)


def validate_coupon(db, code: str, cart_total: float) -> CouponValidation:
    code = (code or "").strip().upper()
    cart_total = float(cart_total)
    coupon = db["coupon"].find_one({"code": code})
    if not coupon or not coupon.get("is_active", False):
        return _invalid("Invalid coupon code")

    expires_at = coupon.get("expires_at")
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < now_utc():
            return _invalid("Coupon has expired")

    usage_limit = coupon.get("usage_limit")
    if usage_limit is not None and coupon.get("used_count", 0) >= usage_limit:
        return _invalid("Coupon usage limit reached")

    min_purchase = float(coupon.get("min_purchase_amount") or 0)
    if cart_total < min_purchase:
        return _invalid(f"Minimum purchase of ₹{min_purchase:.2f} required")

    value = float(coupon.get("discount_value") or 0)
    if coupon.get("discount_type") == "percentage":
        discount = cart_total * value / 100.0
        cap = coupon.get("max_discount_amount")
        if cap is not None:
            discount = min(discount, float(cap))
    else:
        discount = value
    discount = round(min(discount, cart_total), 2)

    return CouponValidation(
        valid=True,
        code=code,
        discount_type=coupon.get("discount_type"),
        discount_value=value,
        discount_amount=discount,
        final_total=round(cart_total - discount, 2),
        original_total=cart_total,
    )


def generate_order_number(db) -> str:
    counter = db["counter"].find_one_and_update(
        {"_id": "order_number"},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return f"ORD{now_utc():%Y%m%d}{counter['seq']:05d}"


def increment_coupon_usage(db, code: str) -> int:
    res = db["coupon"].update_one({"code": code.upper()}, {"$inc": {"used_count": 1}})
    return res.modified_count


def update_user_xp(db, user_id: str, xp: int) -> dict:
    profile = db["userprofile"].find_one_and_update(
        {"user_id": user_id},
        {"$inc": {"total_xp": int(xp)}, "$set": {"last_active_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if profile is None:
        raise NotFoundError("Profile not found")
    logger.info("Awarded %s XP to %s (total %s)", xp, user_id, profile.get("total_xp"))
    return to_str_id(profile)


def get_global_leaderboard(db, limit: int = 100) -> List[LeaderboardEntry]:
    cursor = db["userprofile"].find({}).sort([("total_xp", -1), ("username", 1)]).limit(int(limit))
    return [
        LeaderboardEntry(
            user_id=p["user_id"],
            username=p.get("username") or "",
            email=p.get("email"),
            total_xp=int(p.get("total_xp") or 0),
            rank=i + 1,
        )
        for i, p in enumerate(cursor)
    ]


DEFAULT_PROCEDURES = {
    "validate_coupon": validate_coupon,
    "generate_order_number": generate_order_number,
    "increment_coupon_usage": increment_coupon_usage,
    "update_user_xp": update_user_xp,
    "get_global_leaderboard": get_global_leaderboard,
}
