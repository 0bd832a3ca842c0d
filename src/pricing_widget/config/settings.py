"""
Centralized settings for the pricing widget.

Values come from PRICING_WIDGET_* environment variables with sensible
defaults, so a bare checkout runs against a local pricing endpoint.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = 'PRICING_WIDGET_'

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def _env(name: str) -> Optional[str]:
    raw = os.getenv(f'{ENV_PREFIX}{name}')
    if raw is None or raw.strip() == '':
        return None
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Pricing collaborator
    pricing_api_url: str = 'http://localhost:3000/api/prices'
    request_timeout: float = 10.0

    # Where confirmed checkouts are forwarded (None disables forwarding)
    checkout_url: Optional[str] = None

    # Machine behaviour
    debounce_ms: int = 500
    default_quantity: int = 1
    trace_limit: int = 100

    log_level: str = 'INFO'

    def __post_init__(self):
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must not be negative")
        if self.default_quantity < 1:
            raise ValueError("default_quantity must be a positive integer")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @classmethod
    def load(cls) -> 'Settings':
        """Load settings from the environment."""
        defaults = cls()
        return cls(
            pricing_api_url=_env('PRICING_API_URL') or defaults.pricing_api_url,
            request_timeout=_env_float('REQUEST_TIMEOUT', defaults.request_timeout),
            checkout_url=_env('CHECKOUT_URL'),
            debounce_ms=_env_int('DEBOUNCE_MS', defaults.debounce_ms),
            default_quantity=_env_int('DEFAULT_QUANTITY', defaults.default_quantity),
            trace_limit=_env_int('TRACE_LIMIT', defaults.trace_limit),
            log_level=(_env('LOG_LEVEL') or defaults.log_level).upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def configure_logging(settings: Optional[Settings] = None):
    """Set up root logging once for the API and the scripts."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
