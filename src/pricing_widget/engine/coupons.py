"""
Coupon actions and guards.

Pure functions over context snapshots. Each action returns the context
changes it wants (a dict for `PricingContext.evolve`) plus trace steps, so
the transition function stays free of side effects.
"""
import logging
from typing import Any, Optional

from .models import CouponToApply, CouponType, PricingContext, TraceStep
from .schemas import PricingData, parse_pricing_data, parse_ppp_coupon

logger = logging.getLogger(__name__)


def find_available_ppp_coupon(pricing_data: Any) -> Optional[str]:
    """Code of the regional coupon in a raw payload, or None."""
    payload = parse_ppp_coupon(pricing_data)
    return payload.coupon_code if payload else None


def extract_applied_default_coupon(pricing_data: PricingData) -> Optional[CouponToApply]:
    """
    Return the site-wide coupon if the server actually applied it.

    The default coupon must be both listed in `available_coupons.default`
    and equal (by code) to `applied_coupon`. An applied coupon that is not
    the default one (e.g. a PPP code sent by us) is not inferred here.
    """
    available = pricing_data.available_coupons.default if pricing_data.available_coupons else None
    applied = pricing_data.applied_coupon

    if not available or not applied:
        return None

    if available.coupon_code == applied.coupon_code:
        return CouponToApply(coupon_code=applied.coupon_code, coupon_type=CouponType.DEFAULT)

    return None


def assign_pricing_data(context: PricingContext, data: Any) -> tuple[dict, list[TraceStep]]:
    """
    Reconcile a freshly fetched payload with the current selection.

    Resolution order:
    1. Malformed payload: store it raw, leave the coupon decision alone
    2. Selected plan has no discounted price: clear the coupon
    3. Server applied the site-wide coupon: adopt it as a default coupon
    4. Otherwise keep whatever coupon is already in context
    """
    trace = [TraceStep("Pricing Data", "Stored fetched payload")]
    changes: dict = {"pricing_data": data}

    validated = parse_pricing_data(data)
    if validated is None:
        logger.warning("Pricing payload failed validation; skipping coupon inference")
        trace.append(TraceStep("Validation", "Payload has no valid plans list, coupon untouched"))
        return changes, trace

    # Coupons with a minimum apply per plan: no discount path, no coupon.
    current_plan = validated.find_plan(context.price_id)
    if current_plan is None or not current_plan.has_discount:
        changes["coupon_to_apply"] = None
        reason = "Selected plan not in payload" if current_plan is None else "Selected plan has no discounted price"
        trace.append(TraceStep("Plan Discount", reason, context.price_id))
        return changes, trace

    trace.append(TraceStep("Plan Discount", "Selected plan is discounted", f"{current_plan.price_discounted}"))

    default_coupon = extract_applied_default_coupon(validated)
    if default_coupon:
        changes["coupon_to_apply"] = default_coupon
        trace.append(TraceStep("Default Coupon", "Server applied the site-wide coupon", default_coupon.coupon_code))
    else:
        trace.append(TraceStep("Default Coupon", "No applied site-wide coupon, keeping current coupon", context.coupon_code))

    return changes, trace


def apply_ppp_coupon(context: PricingContext) -> tuple[dict, list[TraceStep]]:
    """Select the regional coupon from the loaded payload (None when absent)."""
    code = find_available_ppp_coupon(context.pricing_data)
    if code is None:
        return {"coupon_to_apply": None}, [TraceStep("PPP Coupon", "No regional coupon available")]
    coupon = CouponToApply(coupon_code=code, coupon_type=CouponType.PPP)
    return {"coupon_to_apply": coupon}, [TraceStep("PPP Coupon", "Applying regional coupon", code)]


def remove_ppp_coupon(context: PricingContext) -> tuple[dict, list[TraceStep]]:
    return {"coupon_to_apply": None}, [TraceStep("PPP Coupon", "Removed regional coupon", context.coupon_code)]


# Guards

def pricing_includes_ppp_coupon(context: PricingContext) -> bool:
    return context.coupon_to_apply is not None and context.coupon_to_apply.coupon_type == CouponType.PPP


def pricing_includes_default_coupon(context: PricingContext) -> bool:
    return context.coupon_to_apply is not None and context.coupon_to_apply.coupon_type == CouponType.DEFAULT


def price_has_been_selected(context: PricingContext) -> bool:
    return bool(context.price_id)
