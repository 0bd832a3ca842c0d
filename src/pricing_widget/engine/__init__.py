"""Engine subpackage - pricing state machine, coupon logic and orchestrator."""
from .models import CouponToApply, CouponType, PricingContext
from .orchestrator import PricingOrchestrator
from .transitions import transition, initial_transition

__all__ = [
    'PricingOrchestrator', 'PricingContext', 'CouponToApply', 'CouponType',
    'transition', 'initial_transition',
]
