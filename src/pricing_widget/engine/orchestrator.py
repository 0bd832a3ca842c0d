"""
Pricing Orchestrator - runs the pricing state machine on an asyncio loop.

The transition function decides; this class executes what it decides:
- launches pricing fetches and feeds their outcome back as events
- owns the single debounce timer handle (restarted on every quantity edit)
- schedules checkout callbacks without observing their outcome
- forwards analytics events to a fire-and-forget sink
- keeps a bounded trace history and notifies listeners after each change
"""
import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from .models import (
    ApplyPPPCoupon,
    CheckoutCallback,
    ConfirmPrice,
    DebounceElapsed,
    Event,
    FetchFailed,
    FetchPricing,
    FetchSucceeded,
    LoadingPrices,
    MachineState,
    PricingContext,
    QuantityChanged,
    RemovePPPCoupon,
    RunCheckout,
    StartDebounceTimer,
    SwitchPrice,
    Track,
    TraceStep,
    Transition,
    validate_quantity,
)
from .coupons import price_has_been_selected
from .transitions import initial_transition, transition
from ..services.analytics import AnalyticsSink, NullAnalytics

logger = logging.getLogger(__name__)


Listener = Callable[['PricingOrchestrator'], None]


class PricingOrchestrator:
    """
    One instance per pricing widget.

    Events are processed one at a time, to completion, in submission order.
    The only suspension points are the pricing fetch and the checkout
    callback; both run as tasks and never block event processing.
    """

    def __init__(
        self,
        fetch_pricing,
        settings: Optional[Settings] = None,
        analytics: Optional[AnalyticsSink] = None,
        price_id: Optional[str] = None,
        quantity: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self.fetch_pricing = fetch_pricing
        self.analytics = analytics or NullAnalytics()

        if quantity is None:
            quantity = self.settings.default_quantity

        self.state: MachineState = MachineState()
        self.context = PricingContext(price_id=price_id, quantity=validate_quantity(quantity))
        self.history: deque[TraceStep] = deque(maxlen=self.settings.trace_limit)

        self._mailbox: deque[Event] = deque()
        self._processing = False
        self._started = False
        self._closed = False
        self._listeners: list[Listener] = []

        self._timer: Optional[asyncio.TimerHandle] = None
        self._fetch_tasks: set[asyncio.Task] = set()
        self._checkout_tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.state.final

    def snapshot(self) -> dict:
        """Everything a UI needs to render the widget."""
        return {
            "state": self.state.name,
            "path": self.state.path,
            "done": self.done,
            "loading": isinstance(self.state, LoadingPrices),
            "failed": self.done,
            "priceSelected": price_has_been_selected(self.context),
            "context": self.context.to_dict(),
        }

    def get_trace_text(self) -> str:
        """Get human-readable trace history as formatted text."""
        return "\n".join(t.to_text() for t in self.history)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(self)` after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Event surface
    # ------------------------------------------------------------------

    def start(self) -> 'PricingOrchestrator':
        """Enter the initial state and request the first prices."""
        if self._started:
            return self
        self._started = True
        logger.info("Starting pricing widget (price_id=%s, quantity=%s)", self.context.price_id, self.context.quantity)
        self._run_to_completion(lambda: self._apply(initial_transition(self.context)))
        return self

    def send(self, event: Event):
        """Queue an event; it is processed immediately unless another is in progress."""
        if self._closed:
            logger.debug("Dropping %s: widget closed", event.type)
            return
        if not self._started:
            raise RuntimeError("PricingOrchestrator.start() must be called before sending events")

        self._mailbox.append(event)
        if self._processing:
            return
        self._run_to_completion(lambda: None)

    def change_quantity(self, quantity: int):
        self.send(QuantityChanged(quantity))

    def apply_ppp_coupon(self):
        self.send(ApplyPPPCoupon())

    def remove_ppp_coupon(self):
        self.send(RemovePPPCoupon())

    def switch_price(self, price_id: str):
        self.send(SwitchPrice(price_id))

    def confirm_price(self, on_click_checkout: CheckoutCallback) -> Optional[asyncio.Task]:
        """
        Confirm checkout. Returns the checkout task when one was started,
        so callers that care about the callback's outcome can await it.
        """
        before = set(self._checkout_tasks)
        self.send(ConfirmPrice(on_click_checkout))
        started = self._checkout_tasks - before
        return next(iter(started), None)

    async def settled(self):
        """Wait until no debounce timer is pending and no fetch is in flight."""
        await self._idle.wait()

    def close(self):
        """Tear down: cancel the timer and in-flight fetches, ignore further events."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        for task in list(self._fetch_tasks):
            task.cancel()
        self._mailbox.clear()
        self._listeners.clear()
        self._idle.set()
        logger.info("Closed pricing widget in state %s", self.state.path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_to_completion(self, first: Callable[[], None]):
        self._processing = True
        try:
            first()
            while self._mailbox and not self._closed:
                self._process(self._mailbox.popleft())
        finally:
            self._processing = False
            self._update_idle()

    def _process(self, event: Event):
        result = transition(self.state, event, self.context)
        self._apply(result)

    def _apply(self, result: Transition):
        previous = self.state.path
        self.state = result.state
        self.context = result.context
        self.history.extend(result.trace)

        if result.changed:
            logger.debug("Transition %s -> %s", previous, self.state.path)
        else:
            logger.debug("Ignored event in %s: %s", previous, result.trace[-1].value if result.trace else "")

        for effect in result.effects:
            self._run_effect(effect)

        if result.changed:
            self._notify()

    def _run_effect(self, effect):
        if isinstance(effect, FetchPricing):
            self._start_fetch(effect)
        elif isinstance(effect, StartDebounceTimer):
            self._start_timer(effect)
        elif isinstance(effect, RunCheckout):
            self._start_checkout(effect)
        elif isinstance(effect, Track):
            self._track(effect)
        else:
            raise TypeError(f"Unknown effect {effect!r}")

    def _start_fetch(self, effect: FetchPricing):
        task = asyncio.get_running_loop().create_task(self._fetch(effect))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_finished)
        self._idle.clear()

    async def _fetch(self, effect: FetchPricing):
        try:
            data = await self.fetch_pricing(quantity=effect.quantity, coupon_code=effect.coupon_code)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info("Fetch #%s failed: %s", effect.fetch_id, e)
            self.send(FetchFailed(fetch_id=effect.fetch_id, reason=str(e) or type(e).__name__))
            return
        logger.info("Fetch #%s completed", effect.fetch_id)
        self.send(FetchSucceeded(fetch_id=effect.fetch_id, data=data))

    def _fetch_finished(self, task: asyncio.Task):
        self._fetch_tasks.discard(task)
        self._update_idle()

    def _start_timer(self, effect: StartDebounceTimer):
        # At most one timer per instance: a new quantity edit replaces the old one.
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.settings.debounce_seconds, self._timer_fired, effect.timer_id)
        self._idle.clear()

    def _timer_fired(self, timer_id: int):
        self._timer = None
        self.send(DebounceElapsed(timer_id=timer_id))

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_checkout(self, effect: RunCheckout):
        # The outcome never feeds back into the machine.
        task = asyncio.ensure_future(effect.on_click_checkout())
        self._checkout_tasks.add(task)
        task.add_done_callback(self._checkout_tasks.discard)

    def _track(self, effect: Track):
        try:
            self.analytics.track(effect.event, effect.properties)
        except Exception:
            logger.warning("Analytics sink failed for %s", effect.event, exc_info=True)

    def _update_idle(self):
        if self._timer is None and not self._fetch_tasks and not self._processing:
            self._idle.set()

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Pricing widget listener failed")
