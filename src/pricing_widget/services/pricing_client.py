"""
HTTP collaborators: the pricing fetch call and the checkout forwarder.

Both use httpx.AsyncClient. A client may be injected (tests pass one built
on httpx.MockTransport); otherwise a short-lived client is opened per call.
"""
import logging
from typing import Optional, Protocol

import httpx

from ..errors import CheckoutError, PricingFetchError
from ..engine.models import CheckoutCallback, PricingContext

logger = logging.getLogger(__name__)


class PricingFetcher(Protocol):
    """Fetch collaborator contract. Must raise on failure, never return empty."""

    async def __call__(self, quantity: int, coupon_code: Optional[str] = None) -> dict:
        ...


class HttpPricingClient:
    """Loads pricing data for a quantity and optional coupon code."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    async def __call__(self, quantity: int, coupon_code: Optional[str] = None) -> dict:
        params = {"quantity": quantity}
        if coupon_code:
            params["coupon"] = coupon_code

        logger.info("Fetching prices from %s (quantity=%s, coupon=%s)", self.base_url, quantity, coupon_code)
        try:
            if self._client is not None:
                response = await self._client.get(self.base_url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.base_url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PricingFetchError(
                f"Pricing request failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise PricingFetchError(f"Pricing request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise PricingFetchError("Pricing response is not valid JSON") from e

        if not isinstance(data, dict):
            raise PricingFetchError(f"Pricing response must be an object, got {type(data).__name__}")

        return data


class CheckoutForwarder:
    """
    Builds checkout callbacks that POST the confirmed selection.

    The machine only schedules the callback; whether the POST succeeds is
    the caller's concern (a failure raises CheckoutError from the task).
    """

    def __init__(self, checkout_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.checkout_url = checkout_url
        self.timeout = timeout
        self._client = client

    def callback_for(self, context: PricingContext) -> CheckoutCallback:
        """Zero-argument callback bound to a snapshot of the selection."""
        body = {
            "priceId": context.price_id,
            "quantity": context.quantity,
            "couponCode": context.coupon_code,
        }

        async def on_click_checkout() -> dict:
            return await self.forward(body)

        return on_click_checkout

    async def forward(self, body: dict) -> dict:
        logger.info("Forwarding checkout for %s", body.get("priceId"))
        try:
            if self._client is not None:
                response = await self._client.post(self.checkout_url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.checkout_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CheckoutError(f"Checkout forwarding failed: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"body": response.text}
