"""Engine subpackage - core pricing logic and resolution."""
from .pricing_engine import PricingEngine, compute_pricing
from .errors import InvalidInput
from .models import (
    AllInCategory,
    DiscountRule,
    LineItem,
    PricingRequest,
    PricingResult,
    SpecificItems,
)

__all__ = [
    'PricingEngine', 'compute_pricing', 'InvalidInput',
    'AllInCategory', 'SpecificItems', 'DiscountRule',
    'LineItem', 'PricingRequest', 'PricingResult',
]
