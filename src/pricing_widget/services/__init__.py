"""Services subpackage - external collaborators of the orchestrator."""
from .analytics import AnalyticsSink, LoggingAnalytics, NullAnalytics
from .pricing_client import CheckoutForwarder, HttpPricingClient, PricingFetcher

__all__ = [
    'AnalyticsSink', 'LoggingAnalytics', 'NullAnalytics',
    'CheckoutForwarder', 'HttpPricingClient', 'PricingFetcher',
]
