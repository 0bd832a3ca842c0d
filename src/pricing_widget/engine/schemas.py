"""
Pydantic models for the pricing payload returned by the fetch collaborator.

The machine stores payloads raw; these models are only used to read them
safely. Every `parse_*` helper returns None instead of raising.
"""
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


class CouponRecord(BaseModel):
    """A `{coupon_code}` record."""
    model_config = ConfigDict(extra='allow')

    coupon_code: str


class AvailableCoupons(BaseModel):
    """Coupons the server says the visitor may use."""
    model_config = ConfigDict(extra='allow')

    ppp: Optional[CouponRecord] = None
    default: Optional[CouponRecord] = None

    @field_validator('ppp', 'default', mode='wrap')
    @classmethod
    def _ignore_malformed_record(cls, value, handler):
        # A broken record only hides itself, never its sibling.
        try:
            return handler(value)
        except ValidationError:
            return None


class PricingPlan(BaseModel):
    """One purchasable plan. Only the fields the machine reads are typed."""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    plan_id: str = Field(validation_alias=AliasChoices('planId', 'stripe_price_id', 'plan_id'))
    price_discounted: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices('priceDiscounted', 'price_discounted'),
    )

    @property
    def has_discount(self) -> bool:
        return self.price_discounted is not None


class PricingData(BaseModel):
    """A validated pricing payload."""
    model_config = ConfigDict(extra='allow')

    plans: list[PricingPlan]
    available_coupons: Optional[AvailableCoupons] = None
    applied_coupon: Optional[CouponRecord] = None

    @field_validator('available_coupons', 'applied_coupon', mode='wrap')
    @classmethod
    def _ignore_malformed_coupons(cls, value, handler):
        # Only the plans list decides validity; broken coupon data reads as absent.
        try:
            return handler(value)
        except ValidationError:
            return None

    def find_plan(self, plan_id: Optional[str]) -> Optional[PricingPlan]:
        """Locate the plan with the given id, if any."""
        if plan_id is None:
            return None
        for plan in self.plans:
            if plan.plan_id == plan_id:
                return plan
        return None


class _RequiredPPP(BaseModel):
    ppp: CouponRecord


class PPPCouponPayload(BaseModel):
    """Shape a payload must have for the regional coupon to be applicable."""
    available_coupons: _RequiredPPP

    @property
    def coupon_code(self) -> str:
        return self.available_coupons.ppp.coupon_code


def parse_pricing_data(data: Any) -> Optional[PricingData]:
    """Validate a raw payload; None when it does not have a valid plans list."""
    try:
        return PricingData.model_validate(data)
    except ValidationError:
        return None


def parse_ppp_coupon(data: Any) -> Optional[PPPCouponPayload]:
    """Validate that a raw payload carries a regional coupon."""
    try:
        return PPPCouponPayload.model_validate(data)
    except ValidationError:
        return None
