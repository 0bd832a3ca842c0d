"""
Data models for the pricing orchestrator.

Uses frozen dataclasses for the context, the states (a tagged union), the
events the machine accepts and the effects a transition asks for.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..errors import InvalidEventError


CheckoutCallback = Callable[[], Awaitable[Any]]


class CouponType(str, Enum):
    PPP = "ppp"          # regional purchasing-power-parity discount
    DEFAULT = "default"  # site-wide discount


@dataclass(frozen=True)
class CouponToApply:
    """The discount the machine intends to send on the next fetch/checkout."""
    coupon_code: str
    coupon_type: CouponType

    def to_dict(self) -> dict:
        return {"couponCode": self.coupon_code, "couponType": self.coupon_type.value}


@dataclass(frozen=True)
class TraceStep:
    """A single step in the transition trace."""
    step: str
    description: str
    value: Optional[str] = None

    def to_text(self) -> str:
        if self.value:
            return f"→ {self.step}: {self.description} = {self.value}"
        return f"→ {self.step}: {self.description}"


@dataclass(frozen=True)
class PricingContext:
    """
    Everything the widget renders from.

    `pricing_data` is stored exactly as fetched; it is validated on demand
    by the coupon actions. `revision` feeds fetch and timer ids.
    """
    pricing_data: dict = field(default_factory=dict)
    price_id: Optional[str] = None
    quantity: int = 1
    coupon_to_apply: Optional[CouponToApply] = None
    revision: int = 0

    def evolve(self, **changes) -> 'PricingContext':
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def coupon_code(self) -> Optional[str]:
        return self.coupon_to_apply.coupon_code if self.coupon_to_apply else None

    def to_dict(self) -> dict:
        return {
            "pricingData": self.pricing_data,
            "priceId": self.price_id,
            "quantity": self.quantity,
            "couponToApply": self.coupon_to_apply.to_dict() if self.coupon_to_apply else None,
        }


# ============================================================================
# STATES
# ============================================================================

@dataclass(frozen=True)
class MachineState:
    """Base of the state union. `path` is the dotted position in the chart."""
    name = "unknown"
    parent = None
    final = False

    @property
    def path(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name

    def matches(self, name: str) -> bool:
        """True if this state is `name` or nested inside it."""
        return name in (self.name, self.parent, self.path)


@dataclass(frozen=True)
class LoadingPrices(MachineState):
    fetch_id: int = 0
    name = "loadingPrices"


@dataclass(frozen=True)
class DebouncingQuantityChange(MachineState):
    timer_id: int = 0
    name = "debouncingQuantityChange"


@dataclass(frozen=True)
class PricesLoaded(MachineState):
    name = "pricesLoaded"


@dataclass(frozen=True)
class WithPPPCoupon(PricesLoaded):
    name = "withPPPCoupon"
    parent = "pricesLoaded"


@dataclass(frozen=True)
class WithDefaultCoupon(PricesLoaded):
    name = "withDefaultCoupon"
    parent = "pricesLoaded"


@dataclass(frozen=True)
class WithoutCoupon(PricesLoaded):
    name = "withoutCoupon"
    parent = "pricesLoaded"


@dataclass(frozen=True)
class PricingFetchFailed(MachineState):
    reason: Optional[str] = None
    name = "pricingFetchFailed"
    final = True


# ============================================================================
# EVENTS
# ============================================================================

def validate_quantity(quantity: Any) -> int:
    """Quantities are positive integers; anything else is rejected."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidEventError(f"quantity must be an integer, got {quantity!r}")
    if quantity < 1:
        raise InvalidEventError(f"quantity must be positive, got {quantity}")
    return quantity


@dataclass(frozen=True)
class Event:
    type = "EVENT"


@dataclass(frozen=True)
class QuantityChanged(Event):
    quantity: int
    type = "CHANGE_QUANTITY"

    def __post_init__(self):
        validate_quantity(self.quantity)


@dataclass(frozen=True)
class RemovePPPCoupon(Event):
    type = "REMOVE_PPP_COUPON"


@dataclass(frozen=True)
class ApplyPPPCoupon(Event):
    type = "APPLY_PPP_COUPON"


@dataclass(frozen=True)
class ConfirmPrice(Event):
    on_click_checkout: CheckoutCallback
    type = "CONFIRM_PRICE"


@dataclass(frozen=True)
class SwitchPrice(Event):
    price_id: str
    type = "SWITCH_PRICE"


@dataclass(frozen=True)
class FetchSucceeded(Event):
    fetch_id: int
    data: Any
    type = "FETCH_SUCCEEDED"


@dataclass(frozen=True)
class FetchFailed(Event):
    fetch_id: int
    reason: Optional[str] = None
    type = "FETCH_FAILED"


@dataclass(frozen=True)
class DebounceElapsed(Event):
    timer_id: int
    type = "DEBOUNCE_ELAPSED"


# ============================================================================
# EFFECTS
# ============================================================================

@dataclass(frozen=True)
class FetchPricing:
    fetch_id: int
    quantity: int
    coupon_code: Optional[str] = None


@dataclass(frozen=True)
class StartDebounceTimer:
    timer_id: int


@dataclass(frozen=True)
class RunCheckout:
    on_click_checkout: CheckoutCallback


@dataclass(frozen=True)
class Track:
    """Fire-and-forget analytics event."""
    event: str
    properties: dict = field(default_factory=dict)


@dataclass
class Transition:
    """Result of feeding one event to the machine."""
    state: MachineState
    context: PricingContext
    effects: list = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)
    changed: bool = True

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this transition."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        return "\n".join(t.to_text() for t in self.trace)
