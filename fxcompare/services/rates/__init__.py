"""Card-network versus reference exchange-rate comparison services."""

from .aggregator import RateAggregator
from .cache import TTLCache
from .config import RatesConfig, resolve_config
from .models import RateQuery, RateSeries, Unsupported
from .service import BROWSER_PROVIDERS, build_sources, open_aggregator

__all__ = [
    "BROWSER_PROVIDERS",
    "RateAggregator",
    "RateQuery",
    "RateSeries",
    "RatesConfig",
    "TTLCache",
    "Unsupported",
    "build_sources",
    "open_aggregator",
    "resolve_config",
]
