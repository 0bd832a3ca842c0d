"""
Transition function for the pricing orchestrator.

`transition(state, event, context)` is pure: it never awaits, never touches
timers and never calls collaborators. It returns the next state, the next
context and the effects the orchestrator must run.

State chart:

    loadingPrices ──done──▶ pricesLoaded ─┬─ withPPPCoupon
          │                               ├─ withDefaultCoupon
          └──error──▶ pricingFetchFailed  └─ withoutCoupon
    (any) ──CHANGE_QUANTITY──▶ debouncingQuantityChange ──500ms──▶ loadingPrices
"""
from .coupons import (
    apply_ppp_coupon,
    assign_pricing_data,
    pricing_includes_default_coupon,
    pricing_includes_ppp_coupon,
    remove_ppp_coupon,
)
from .models import (
    ApplyPPPCoupon,
    ConfirmPrice,
    DebounceElapsed,
    DebouncingQuantityChange,
    Event,
    FetchFailed,
    FetchPricing,
    FetchSucceeded,
    LoadingPrices,
    MachineState,
    PricesLoaded,
    PricingContext,
    PricingFetchFailed,
    QuantityChanged,
    RemovePPPCoupon,
    RunCheckout,
    StartDebounceTimer,
    SwitchPrice,
    Track,
    Transition,
    WithDefaultCoupon,
    WithoutCoupon,
    WithPPPCoupon,
)


def check_coupon_status(context: PricingContext) -> PricesLoaded:
    """Resolve the `pricesLoaded` sub-state; guards are evaluated in order."""
    if pricing_includes_ppp_coupon(context):
        return WithPPPCoupon()
    if pricing_includes_default_coupon(context):
        return WithDefaultCoupon()
    return WithoutCoupon()


def enter_loading_prices(context: PricingContext, result: Transition) -> Transition:
    """Move `result` into loadingPrices and request a fetch for the current context."""
    fetch_id = context.revision + 1
    context = context.evolve(revision=fetch_id)
    result.state = LoadingPrices(fetch_id=fetch_id)
    result.context = context
    result.effects.append(FetchPricing(
        fetch_id=fetch_id,
        quantity=context.quantity,
        coupon_code=context.coupon_code,
    ))
    result.add_trace("Fetch", f"Requesting prices (fetch #{fetch_id})", f"qty={context.quantity}, coupon={context.coupon_code}")
    return result


def initial_transition(context: PricingContext) -> Transition:
    """Enter the initial state: loadingPrices."""
    return enter_loading_prices(context, Transition(state=MachineState(), context=context))


def _ignored(state: MachineState, context: PricingContext, event: Event, reason: str) -> Transition:
    result = Transition(state=state, context=context, changed=False)
    result.add_trace("Ignored", f"{event.type} in {state.path}", reason)
    return result


def transition(state: MachineState, event: Event, context: PricingContext) -> Transition:
    """
    Feed one event to the machine.

    Returns a Transition; `changed` is False when the event was ignored.
    """
    if state.final:
        return _ignored(state, context, event, "terminal state")

    # Global: a quantity change always (re-)enters debouncing and restarts the timer.
    if isinstance(event, QuantityChanged):
        timer_id = context.revision + 1
        context = context.evolve(quantity=event.quantity, revision=timer_id)
        result = Transition(
            state=DebouncingQuantityChange(timer_id=timer_id),
            context=context,
            effects=[StartDebounceTimer(timer_id=timer_id)],
        )
        result.add_trace("Quantity", "Quantity changed, debouncing", str(event.quantity))
        return result

    if isinstance(state, LoadingPrices):
        return _from_loading_prices(state, event, context)

    if isinstance(state, DebouncingQuantityChange):
        if isinstance(event, DebounceElapsed) and event.timer_id == state.timer_id:
            result = Transition(state=state, context=context)
            result.add_trace("Debounce", "Quantity settled", str(context.quantity))
            return enter_loading_prices(context, result)
        reason = "stale debounce timer" if isinstance(event, DebounceElapsed) else "waiting for quantity to settle"
        return _ignored(state, context, event, reason)

    if isinstance(state, PricesLoaded):
        return _from_prices_loaded(state, event, context)

    return _ignored(state, context, event, "no transition defined")


def _from_loading_prices(state: LoadingPrices, event: Event, context: PricingContext) -> Transition:
    if isinstance(event, (FetchSucceeded, FetchFailed)) and event.fetch_id != state.fetch_id:
        return _ignored(state, context, event, f"stale fetch #{event.fetch_id}")

    if isinstance(event, FetchSucceeded):
        changes, steps = assign_pricing_data(context, event.data)
        context = context.evolve(**changes)
        next_state = check_coupon_status(context)
        result = Transition(state=next_state, context=context, trace=steps)
        result.add_trace("Coupon Status", "Resolved pricesLoaded sub-state", next_state.name)
        return result

    if isinstance(event, FetchFailed):
        result = Transition(
            state=PricingFetchFailed(reason=event.reason),
            context=context,
            effects=[Track("pricing_fetch_failed", {"reason": event.reason, "quantity": context.quantity})],
        )
        result.add_trace("Fetch", "Pricing fetch failed", event.reason)
        return result

    return _ignored(state, context, event, "waiting for prices")


def _from_prices_loaded(state: PricesLoaded, event: Event, context: PricingContext) -> Transition:
    # Events handled by the compound parent
    if isinstance(event, SwitchPrice):
        result = Transition(state=state, context=context.evolve(price_id=event.price_id))
        result.add_trace("Plan", "Switched selected plan", event.price_id)
        return result

    if isinstance(event, ConfirmPrice):
        result = Transition(
            state=state,
            context=context,
            effects=[
                RunCheckout(event.on_click_checkout),
                Track("checkout_confirmed", {
                    "price_id": context.price_id,
                    "quantity": context.quantity,
                    "coupon": context.coupon_code,
                }),
            ],
        )
        result.add_trace("Checkout", "Checkout confirmed", context.price_id)
        return result

    # Events handled by the coupon sub-states
    if isinstance(state, WithPPPCoupon) and isinstance(event, RemovePPPCoupon):
        changes, steps = remove_ppp_coupon(context)
        result = Transition(
            state=state,
            context=context,
            effects=[Track("ppp_coupon_removed", {"coupon": context.coupon_code})],
            trace=steps,
        )
        return enter_loading_prices(context.evolve(**changes), result)

    if isinstance(state, (WithDefaultCoupon, WithoutCoupon)) and isinstance(event, ApplyPPPCoupon):
        changes, steps = apply_ppp_coupon(context)
        context = context.evolve(**changes)
        result = Transition(
            state=state,
            context=context,
            effects=[Track("ppp_coupon_applied", {"coupon": context.coupon_code})],
            trace=steps,
        )
        return enter_loading_prices(context, result)

    return _ignored(state, context, event, "no transition defined")


__all__ = ['transition', 'initial_transition', 'check_coupon_status']
