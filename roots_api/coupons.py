import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends

from . import storage
from .config import API_PREFIX
from .errors import InvalidRequestError, NotFoundError, RootsError
from .normalize import as_mapping, text_field
from .points import award_points, get_points, read_points
from .session import current_user_id

logger = logging.getLogger(__name__)

router = APIRouter()

REDEMPTION_TTL = timedelta(minutes=5)
BARCODE_DIGITS = 12

STARTER_COUPONS = [
    ("National Museum Entry - 50% Off", "Half price admission to any participating national museum", "museum", "50%", 50, 200, "🏛️"),
    ("Coffee Shop - Buy 1 Get 1 Free", "Get a free coffee with any purchase at participating cafes", "coffee", "BOGO", 25, 150, "☕"),
    ("Local Restaurant - 30% Off Meal", "30% discount on your total bill at traditional restaurants", "food", "30%", 75, 100, "🍽️"),
    ("Art Gallery - Free Entry", "Complimentary admission to select art galleries", "museum", "100%", 40, 180, "🎨"),
    ("Traditional Tea House - 20% Off", "Save 20% on authentic tea experiences", "coffee", "20%", 30, 120, "🍵"),
    ("Cultural Festival Pass - $10 Off", "Get $10 off admission to cultural festivals", "museum", "$10", 60, 90, "🎭"),
    ("Bakery - Free Pastry", "One free pastry with any purchase", "food", "Free Item", 20, 200, "🥐"),
    ("Historical Site Tour - 40% Off", "Save 40% on guided historical tours", "museum", "40%", 80, 75, "🏰"),
    ("Specialty Coffee - $5 Off", "$5 discount on premium coffee blends", "coffee", "$5", 35, 160, "☕"),
    ("Ethnic Food Market - 25% Off", "25% discount on authentic ingredients", "food", "25%", 45, 140, "🛒"),
    ("Museum Gift Shop - 15% Off", "Save 15% on cultural souvenirs", "museum", "15%", 25, 200, "🎁"),
    ("Dessert Cafe - Free Dessert", "Complimentary dessert with any main order", "food", "Free Item", 40, 110, "🍰"),
    ("Heritage Workshop - 50% Off", "Half price on traditional craft workshops", "museum", "50%", 90, 60, "🎨"),
    ("Juice Bar - Buy 2 Get 1 Free", "Get a free juice with every 2 purchases", "coffee", "B2G1", 30, 130, "🥤"),
    ("Fine Dining - $25 Off", "Save $25 on meals at upscale restaurants", "food", "$25", 100, 50, "🍷"),
]
STARTER_VALID_UNTIL = "2026-12-31T00:00:00+00:00"


def starter_catalogue(now: str) -> list[dict[str, Any]]:
    return [
        {
            "title": title,
            "description": description,
            "category": category,
            "discount": discount,
            "pointsCost": cost,
            "totalUses": uses,
            "usesRemaining": uses,
            "validUntil": STARTER_VALID_UNTIL,
            "icon": icon,
            "createdAt": now,
        }
        for title, description, category, discount, cost, uses, icon in STARTER_COUPONS
    ]


def generate_barcode() -> str:
    return str(secrets.randbelow(10**BARCODE_DIGITS)).zfill(BARCODE_DIGITS)


def _uses_remaining(coupon: dict[str, Any]) -> int:
    value = coupon.get("usesRemaining")
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


@router.get(f"{API_PREFIX}/coupons")
def list_coupons(user_id: str = Depends(current_user_id)):
    try:
        now = storage.utcnow_iso()
        coupons = [c for c in storage.find_many(storage.COUPONS) if _uses_remaining(c) > 0]
        coupons.sort(key=lambda c: (c.get("pointsCost") or 0, c.get("title") or ""))
        redeemed = [
            r
            for r in storage.find_many(storage.REDEEMED_COUPONS, {"userId": user_id}, order_by="redeemedAt", descending=True)
            if (r.get("expiresAt") or "") > now
        ]
        user_points = get_points(user_id)
    except Exception as exc:
        logger.error("Coupons GET error: %s", exc, exc_info=True)
        raise RootsError("Unable to load coupons.")
    return {"coupons": coupons, "redeemedCoupons": redeemed, "userPoints": user_points}


@router.post(f"{API_PREFIX}/coupons")
def redeem_coupon(payload: Any = Body(None), user_id: str = Depends(current_user_id)):
    coupon_id = text_field(as_mapping(payload), "couponId")
    if not coupon_id:
        raise InvalidRequestError("Invalid coupon ID.")

    try:
        coupon = storage.get_document(storage.COUPONS, coupon_id)
        if not coupon or _uses_remaining(coupon) <= 0:
            raise NotFoundError("Coupon not available.")

        profile = storage.get_document(storage.PROFILES, user_id)
        cost = int(coupon.get("pointsCost") or 0)
        if not profile or read_points(profile) < cost:
            raise InvalidRequestError("Not enough points.")

        # Three separate writes; a failure part way leaves earlier ones in place.
        redeemed_at = datetime.now(timezone.utc)
        redemption = {
            "userId": user_id,
            "couponId": coupon["id"],
            "couponTitle": coupon.get("title"),
            "couponDiscount": coupon.get("discount"),
            "couponCategory": coupon.get("category"),
            "barcode": generate_barcode(),
            "redeemedAt": redeemed_at.isoformat(),
            "expiresAt": (redeemed_at + REDEMPTION_TTL).isoformat(),
        }
        redemption["id"] = storage.insert_document(storage.REDEEMED_COUPONS, dict(redemption))
        storage.update_document(storage.COUPONS, coupon["id"], {"usesRemaining": storage.increment(-1)})
        award_points(user_id, -cost)
    except RootsError:
        raise
    except Exception as exc:
        logger.error("Coupon redemption error: %s", exc, exc_info=True)
        raise RootsError("Unable to redeem coupon.")

    logger.info("Coupon %s redeemed by %s", coupon["id"], user_id)
    return {"success": True, "redemption": redemption}


@router.post(f"{API_PREFIX}/coupons/seed")
def seed_coupons():
    try:
        existing = storage.count_documents(storage.COUPONS)
        if existing > 0:
            return {"message": "Coupons already seeded.", "count": existing}
        catalogue = starter_catalogue(storage.utcnow_iso())
        for coupon in catalogue:
            storage.insert_document(storage.COUPONS, coupon)
    except Exception as exc:
        logger.error("Coupon seed error: %s", exc, exc_info=True)
        raise RootsError("Unable to seed coupons.")
    return {
        "success": True,
        "message": f"Seeded {len(catalogue)} coupons successfully.",
        "count": len(catalogue),
    }
