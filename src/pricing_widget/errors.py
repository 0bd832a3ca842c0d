"""
Error taxonomy for the pricing widget.

Fetch failures route the machine to its terminal state; malformed payloads
and missing coupon data are not errors at all and never reach this module.
"""


class PricingWidgetError(Exception):
    """Base class for all pricing widget exceptions."""


class InvalidEventError(PricingWidgetError, ValueError):
    """An event was constructed with invalid data (e.g. quantity < 1)."""


class PricingFetchError(PricingWidgetError):
    """The pricing collaborator failed (transport error, bad status, bad body)."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class CheckoutError(PricingWidgetError):
    """Forwarding a confirmed checkout failed."""


class WidgetNotFoundError(PricingWidgetError, KeyError):
    """No live widget is registered under the given id."""

    def __str__(self) -> str:
        return f"Widget '{self.args[0]}' not found"
