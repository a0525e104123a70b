"""
Shared API state - one engine and one discount snapshot per process.
"""
from ..config.settings import get_settings
from ..engine import PricingEngine
from ..services.discount_service import DiscountCatalog, DiscountService

settings = get_settings()
engine = PricingEngine.from_settings(settings)
catalog = DiscountCatalog(settings.compiled_rules)
discount_service = DiscountService(catalog)
