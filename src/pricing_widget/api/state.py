"""
Live widget registry shared by the API routes.

Each widget is one PricingOrchestrator. Widgets live in process memory
until deleted; a deleted widget is closed, and "remounting" means creating
a new one.
"""
import logging
import uuid
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from ..engine.models import CheckoutCallback, PricingContext
from ..engine.orchestrator import PricingOrchestrator
from ..errors import WidgetNotFoundError
from ..services.analytics import AnalyticsSink, LoggingAnalytics
from ..services.pricing_client import CheckoutForwarder, HttpPricingClient, PricingFetcher

logger = logging.getLogger(__name__)


CheckoutFactory = Callable[[PricingContext], CheckoutCallback]


def _log_only_checkout(context: PricingContext) -> CheckoutCallback:
    async def on_click_checkout() -> dict:
        logger.info("Checkout confirmed for %s (no checkout URL configured)", context.price_id)
        return context.to_dict()

    return on_click_checkout


class WidgetRegistry:
    """Creates, looks up and closes widgets."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[PricingFetcher] = None,
        analytics: Optional[AnalyticsSink] = None,
        checkout_factory: Optional[CheckoutFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or HttpPricingClient(
            self.settings.pricing_api_url,
            timeout=self.settings.request_timeout,
        )
        self.analytics = analytics or LoggingAnalytics()

        if checkout_factory is not None:
            self.checkout_factory = checkout_factory
        elif self.settings.checkout_url:
            forwarder = CheckoutForwarder(self.settings.checkout_url, timeout=self.settings.request_timeout)
            self.checkout_factory = forwarder.callback_for
        else:
            self.checkout_factory = _log_only_checkout

        self._widgets: dict[str, PricingOrchestrator] = {}

    def __len__(self) -> int:
        return len(self._widgets)

    def create(self, price_id: Optional[str] = None, quantity: Optional[int] = None) -> tuple[str, PricingOrchestrator]:
        """Create and start a widget. Must be called from a running event loop."""
        widget_id = uuid.uuid4().hex
        widget = PricingOrchestrator(
            self.fetcher,
            settings=self.settings,
            analytics=self.analytics,
            price_id=price_id,
            quantity=quantity,
        )
        self._widgets[widget_id] = widget
        widget.start()
        logger.info("Created widget %s", widget_id)
        return widget_id, widget

    def get(self, widget_id: str) -> PricingOrchestrator:
        try:
            return self._widgets[widget_id]
        except KeyError:
            raise WidgetNotFoundError(widget_id) from None

    def close(self, widget_id: str):
        widget = self._widgets.pop(widget_id, None)
        if widget is None:
            raise WidgetNotFoundError(widget_id)
        widget.close()

    def close_all(self):
        for widget_id in list(self._widgets):
            self.close(widget_id)
