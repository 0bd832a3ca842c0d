"""
PricingOrchestrator on a real event loop: debouncing, fetch delivery,
checkout scheduling and the terminal failure state.
"""
import asyncio

import pytest

from conftest import FakeFetcher, make_payload

from pricing_widget.config.settings import Settings
from pricing_widget.engine import PricingOrchestrator
from pricing_widget.engine.models import CouponToApply, CouponType
from pricing_widget.errors import InvalidEventError, PricingFetchError


class RecordingAnalytics:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def track(self, event, properties):
        self.events.append((event, properties))
        if self.fail:
            raise RuntimeError("sink down")


def run(coro):
    return asyncio.run(coro)


def test_mount_loads_prices_and_resolves_default_coupon(fast_settings):
    fetcher = FakeFetcher(lambda q, c: make_payload(default="D1", applied="D1"))

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, price_id="p1").start()
        assert widget.state.name == "loadingPrices"
        assert widget.snapshot()["loading"]
        await widget.settled()
        return widget

    widget = run(scenario())

    assert fetcher.calls == [{"quantity": 1, "coupon_code": None}]
    assert widget.state.name == "withDefaultCoupon"
    assert widget.context.coupon_to_apply == CouponToApply("D1", CouponType.DEFAULT)
    snapshot = widget.snapshot()
    assert snapshot["path"] == "pricesLoaded.withDefaultCoupon"
    assert snapshot["context"]["couponToApply"] == {"couponCode": "D1", "couponType": "default"}
    assert snapshot["priceSelected"]


def test_quantity_burst_issues_exactly_one_fetch_with_last_quantity():
    settings = Settings(debounce_ms=100)
    fetcher = FakeFetcher()

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=settings, price_id="p1").start()
        await widget.settled()
        for quantity in (2, 3, 4, 5, 6):
            widget.change_quantity(quantity)
            # Displayed quantity tracks each edit immediately
            assert widget.context.quantity == quantity
            assert widget.state.name == "debouncingQuantityChange"
            await asyncio.sleep(0.005)
        await widget.settled()
        return widget

    widget = run(scenario())

    assert fetcher.calls == [
        {"quantity": 1, "coupon_code": None},
        {"quantity": 6, "coupon_code": None},
    ]
    assert widget.state.name == "withoutCoupon"


def test_only_one_timer_outstanding(fast_settings):
    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=fast_settings).start()
        await widget.settled()
        widget.change_quantity(2)
        first = widget._timer
        widget.change_quantity(3)
        assert first.cancelled()
        assert widget._timer is not first
        await widget.settled()
        assert widget._timer is None

    run(scenario())


def test_quantity_change_mid_fetch_discards_stale_response(fast_settings):
    fetcher = FakeFetcher(lambda q, c: make_payload(plans=[{"planId": "p1", "priceDiscounted": q}]), delay=0.05)

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, price_id="p1").start()
        await asyncio.sleep(0.01)
        widget.change_quantity(7)
        await widget.settled()
        return widget

    widget = run(scenario())

    assert [c["quantity"] for c in fetcher.calls] == [1, 7]
    assert widget.context.pricing_data["plans"][0]["priceDiscounted"] == 7
    assert any(t.step == "Ignored" and "stale fetch" in (t.value or "") for t in widget.history)


def test_apply_and_remove_ppp_coupon_round_trip(fast_settings):
    def respond(quantity, coupon_code):
        return make_payload(ppp="PPP50", default="D1", applied=coupon_code or "D1")

    fetcher = FakeFetcher(respond)
    analytics = RecordingAnalytics()

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, analytics=analytics, price_id="p1").start()
        await widget.settled()
        assert widget.state.name == "withDefaultCoupon"

        widget.apply_ppp_coupon()
        assert widget.state.name == "loadingPrices"
        await widget.settled()
        assert widget.state.name == "withPPPCoupon"
        assert widget.context.coupon_to_apply == CouponToApply("PPP50", CouponType.PPP)

        widget.remove_ppp_coupon()
        await widget.settled()
        return widget

    widget = run(scenario())

    assert [c["coupon_code"] for c in fetcher.calls] == [None, "PPP50", None]
    # Without a PPP request the server applies the site-wide coupon again
    assert widget.state.name == "withDefaultCoupon"
    assert [e for e, _ in analytics.events] == ["ppp_coupon_applied", "ppp_coupon_removed"]


def test_apply_ppp_without_regional_coupon_does_not_crash(fast_settings):
    fetcher = FakeFetcher()

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, price_id="p1").start()
        await widget.settled()
        widget.apply_ppp_coupon()
        await widget.settled()
        return widget

    widget = run(scenario())

    assert len(fetcher.calls) == 2
    assert widget.context.coupon_to_apply is None
    assert widget.state.name == "withoutCoupon"


def test_fetch_failure_is_terminal(fast_settings):
    fetcher = FakeFetcher(lambda q, c: PricingFetchError("server down", status_code=503))
    analytics = RecordingAnalytics()

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, analytics=analytics).start()
        await widget.settled()
        assert widget.done
        widget.change_quantity(3)
        widget.apply_ppp_coupon()
        widget.switch_price("p2")
        await widget.settled()
        return widget

    widget = run(scenario())

    assert widget.state.name == "pricingFetchFailed"
    assert widget.state.reason == "server down"
    assert widget.snapshot()["failed"]
    assert widget.context.quantity == 1
    assert widget.context.price_id is None
    assert len(fetcher.calls) == 1
    assert analytics.events[0][0] == "pricing_fetch_failed"


def test_confirm_price_schedules_checkout_and_ignores_its_outcome(fast_settings):
    calls = []

    async def on_click_checkout():
        calls.append("checkout")
        raise RuntimeError("checkout exploded")

    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=fast_settings, price_id="p1").start()
        await widget.settled()
        before = widget.state
        task = widget.confirm_price(on_click_checkout)
        assert task is not None
        with pytest.raises(RuntimeError, match="checkout exploded"):
            await task
        return widget, before

    widget, before = run(scenario())

    assert calls == ["checkout"]
    assert widget.state == before


def test_confirm_price_while_loading_is_ignored(fast_settings):
    async def on_click_checkout():
        raise AssertionError("must not run")

    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(delay=0.02), settings=fast_settings).start()
        task = widget.confirm_price(on_click_checkout)
        await widget.settled()
        return task

    assert run(scenario()) is None


def test_switch_price_updates_selection_for_next_fetch(fast_settings):
    fetcher = FakeFetcher(lambda q, c: make_payload(
        plans=[{"planId": "p1", "priceDiscounted": 10}, {"planId": "p2"}],
        default="D1",
        applied="D1",
    ))

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings, price_id="p1").start()
        await widget.settled()
        assert widget.state.name == "withDefaultCoupon"
        widget.switch_price("p2")
        assert widget.state.name == "withDefaultCoupon"
        widget.change_quantity(2)
        await widget.settled()
        return widget

    widget = run(scenario())

    # Second fetch carried the default coupon, but p2 has no discount path
    assert fetcher.calls[1] == {"quantity": 2, "coupon_code": "D1"}
    assert widget.context.coupon_to_apply is None
    assert widget.state.name == "withoutCoupon"


def test_listeners_and_reentrant_send(fast_settings):
    seen = []

    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=fast_settings, price_id="p1")

        def listener(w):
            seen.append(w.state.name)
            # Sending from a listener queues behind the current event
            if w.state.name == "withoutCoupon" and w.context.price_id == "p1":
                w.switch_price("p9")

        unsubscribe = widget.subscribe(listener)
        widget.start()
        await widget.settled()
        unsubscribe()
        widget.switch_price("p3")
        return widget

    widget = run(scenario())

    assert seen == ["loadingPrices", "withoutCoupon", "withoutCoupon"]
    assert widget.context.price_id == "p3"


def test_failing_listener_and_sink_do_not_break_machine(fast_settings):
    async def scenario():
        widget = PricingOrchestrator(
            FakeFetcher(lambda q, c: make_payload(ppp="PPP50")),
            settings=fast_settings,
            analytics=RecordingAnalytics(fail=True),
            price_id="p1",
        )
        widget.subscribe(lambda w: 1 / 0)
        widget.start()
        await widget.settled()
        widget.apply_ppp_coupon()
        await widget.settled()
        return widget

    widget = run(scenario())

    assert widget.state.name == "withPPPCoupon"


def test_close_cancels_timer_and_ignores_events(fast_settings):
    fetcher = FakeFetcher()

    async def scenario():
        widget = PricingOrchestrator(fetcher, settings=fast_settings).start()
        await widget.settled()
        widget.change_quantity(4)
        widget.close()
        await asyncio.sleep(0.05)
        widget.change_quantity(5)
        await widget.settled()
        return widget

    widget = run(scenario())

    assert len(fetcher.calls) == 1
    assert widget.context.quantity == 4


def test_send_before_start_is_an_error(fast_settings):
    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=fast_settings)
        with pytest.raises(RuntimeError):
            widget.change_quantity(2)

    run(scenario())


def test_invalid_quantity_raises_before_reaching_machine(fast_settings):
    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=fast_settings).start()
        await widget.settled()
        with pytest.raises(InvalidEventError):
            widget.change_quantity(0)
        return widget

    widget = run(scenario())

    assert widget.state.name == "withoutCoupon"


def test_trace_history_is_bounded():
    settings = Settings(debounce_ms=1, trace_limit=5)

    async def scenario():
        widget = PricingOrchestrator(FakeFetcher(), settings=settings, price_id="p1").start()
        await widget.settled()
        for quantity in range(2, 6):
            widget.change_quantity(quantity)
            await widget.settled()
        return widget

    widget = run(scenario())

    assert len(widget.history) == 5
    assert widget.get_trace_text().startswith("→ ")


def test_initial_quantity_must_be_positive_integer(fast_settings):
    for quantity in (0, -3, 2.5, True):
        with pytest.raises(InvalidEventError):
            PricingOrchestrator(FakeFetcher(), settings=fast_settings, quantity=quantity)


def test_missing_initial_quantity_uses_default():
    widget = PricingOrchestrator(FakeFetcher(), settings=Settings(default_quantity=3))

    assert widget.context.quantity == 3
