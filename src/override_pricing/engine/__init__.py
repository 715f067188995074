"""Engine subpackage - override models and price resolution."""
from .models import (
    OverrideRecord,
    Target,
    FixedPrice,
    PercentageDiscount,
    PriceResolution,
    QuoteLine,
    QuoteResult,
    parse_pricing_mode,
)
from .resolver import Resolver, resolve_price

__all__ = [
    'OverrideRecord', 'Target', 'FixedPrice', 'PercentageDiscount', 'PriceResolution',
    'QuoteLine', 'QuoteResult', 'parse_pricing_mode', 'Resolver', 'resolve_price',
]
