"""
Replay a scripted widget session against canned pricing payloads and print
the machine's trace. Handy for checking coupon reconciliation by eye.

Usage:
    python scripts/debug_machine.py
"""
import asyncio
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from pricing_widget.config.settings import Settings, configure_logging
from pricing_widget.engine import PricingOrchestrator


def payload(quantity, coupon_code):
    """Canned server: PPP coupon is applied when asked for, site-wide coupon otherwise."""
    applied = coupon_code or "SITEWIDE"
    return {
        "plans": [
            {"planId": "price_yearly", "price": 250 * quantity, "priceDiscounted": 200 * quantity},
            {"planId": "price_monthly", "price": 25 * quantity},
        ],
        "available_coupons": {
            "ppp": {"coupon_code": "PPP-IN-60"},
            "default": {"coupon_code": "SITEWIDE"},
        },
        "applied_coupon": {"coupon_code": applied},
    }


async def fake_fetch(quantity, coupon_code=None):
    await asyncio.sleep(0.01)
    return payload(quantity, coupon_code)


async def debug():
    settings = Settings(debounce_ms=50, log_level="DEBUG")
    configure_logging(settings)

    widget = PricingOrchestrator(fake_fetch, settings=settings, price_id="price_yearly")
    widget.subscribe(lambda w: print(f"  state → {w.state.path}  coupon={w.context.coupon_code}"))

    print("--- Mount ---")
    widget.start()
    await widget.settled()

    print("\n--- Burst of quantity edits ---")
    for qty in (2, 3, 4):
        widget.change_quantity(qty)
    await widget.settled()

    print("\n--- Apply PPP coupon ---")
    widget.apply_ppp_coupon()
    await widget.settled()

    print("\n--- Remove PPP coupon ---")
    widget.remove_ppp_coupon()
    await widget.settled()

    print("\n--- Switch to a plan without discount, then refetch ---")
    widget.switch_price("price_monthly")
    widget.change_quantity(1)
    await widget.settled()

    print("\nFinal snapshot:")
    print(widget.snapshot())
    print("\nTrace:")
    print(widget.get_trace_text())
    widget.close()


if __name__ == "__main__":
    asyncio.run(debug())
