import asyncio
import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from pricing_widget.config.settings import Settings


def make_payload(plans=None, ppp=None, default=None, applied=None):
    """Build a pricing payload in the collaborator's wire shape."""
    payload = {"plans": plans if plans is not None else [{"planId": "p1", "priceDiscounted": 10}]}
    coupons = {}
    if ppp:
        coupons["ppp"] = {"coupon_code": ppp}
    if default:
        coupons["default"] = {"coupon_code": default}
    if coupons:
        payload["available_coupons"] = coupons
    if applied:
        payload["applied_coupon"] = {"coupon_code": applied}
    return payload


class FakeFetcher:
    """
    Records every call. Responses come from `respond(quantity, coupon_code)`
    (a payload, or an exception instance to raise).
    """

    def __init__(self, respond=None, delay=0.0):
        self.calls = []
        self.respond = respond or (lambda quantity, coupon_code: make_payload())
        self.delay = delay

    async def __call__(self, quantity, coupon_code=None):
        self.calls.append({"quantity": quantity, "coupon_code": coupon_code})
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        result = self.respond(quantity, coupon_code)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fast_settings():
    return Settings(debounce_ms=20, trace_limit=200)


@pytest.fixture(autouse=True)
def clear_widget_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("PRICING_WIDGET_"):
            monkeypatch.delenv(key, raising=False)
