"""Services subpackage - override administration and pricing facade."""
from .override_registry import OverrideRegistry, ReferenceChecker
from .pricing_service import PricingService

__all__ = ['OverrideRegistry', 'ReferenceChecker', 'PricingService']
