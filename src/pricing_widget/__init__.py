"""
Pricing Widget Package

State machine that drives a pricing/checkout widget: fetches pricing data,
debounces quantity edits, and reconciles regional (PPP) and site-wide
coupons against the selected plan.
"""

__version__ = "1.0.0"
