"""
Discounts API - FastAPI router for browsing and checking discount rules.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..engine.errors import InvalidInput
from ..engine.models import AllInCategory, DiscountRule, SpecificItems, naive_local
from ..services.discount_service import ItemOffer, MenuItem
from . import state

router = APIRouter(prefix="/api/discounts", tags=["discounts"])


# Pydantic models for API
class DiscountRuleIn(BaseModel):
    """Request model for a rule definition."""
    id: str
    category_id: str
    percent_off: Decimal
    specific_item_ids: Optional[list[str]] = None
    min_quantity: int = 0
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    coupon_code: Optional[str] = None
    customer_restricted: bool = False
    name: str = ""
    names: dict[str, str] = {}
    description: str = ""

    def to_rule(self) -> DiscountRule:
        if self.specific_item_ids is None:
            scope = AllInCategory()
        else:
            scope = SpecificItems(frozenset(self.specific_item_ids))
        return DiscountRule(
            id=self.id,
            category_id=self.category_id,
            percent_off=self.percent_off,
            scope=scope,
            min_quantity=self.min_quantity,
            active=self.active,
            start_date=naive_local(self.start_date),
            end_date=naive_local(self.end_date),
            coupon_code=self.coupon_code or None,
            customer_restricted=self.customer_restricted,
            name=self.name or self.id,
            names=dict(self.names),
            description=self.description,
        )


class DiscountRuleResponse(BaseModel):
    """Response model for a rule."""
    id: str
    name: str
    display_name: str
    description: str
    category_id: str
    specific_item_ids: Optional[list[str]]
    min_quantity: int
    percent_off: Decimal
    active: bool
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    coupon_code: Optional[str]
    customer_restricted: bool

    @classmethod
    def from_rule(cls, rule: DiscountRule, locales=()) -> 'DiscountRuleResponse':
        item_ids = sorted(rule.scope.item_ids) if isinstance(rule.scope, SpecificItems) else None
        return cls(
            id=rule.id,
            name=rule.name,
            display_name=rule.display_name(locales),
            description=rule.description,
            category_id=rule.category_id,
            specific_item_ids=item_ids,
            min_quantity=rule.min_quantity,
            percent_off=rule.percent_off,
            active=rule.active,
            start_date=rule.start_date,
            end_date=rule.end_date,
            coupon_code=rule.coupon_code,
            customer_restricted=rule.customer_restricted,
        )


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


class CouponRequest(BaseModel):
    """Request model for a coupon lookup."""
    code: str
    now: Optional[datetime] = None


class CouponResponse(BaseModel):
    """Response model for a coupon lookup."""
    valid: bool
    message: str
    discount: Optional[DiscountRuleResponse] = None


class MenuItemIn(BaseModel):
    """Request model for a menu item to preview."""
    item_id: str
    category_id: str
    unit_price: Decimal


class OffersRequest(BaseModel):
    """Menu items plus per-category quantities already in the cart."""
    items: list[MenuItemIn]
    cart_quantities: dict[str, int] = {}
    now: Optional[datetime] = None
    locale: Optional[str] = None


class ItemOfferResponse(BaseModel):
    """Response model for a menu item offer."""
    item_id: str
    rule_id: str
    unit_price: Decimal
    discounted_price: Decimal
    percent_off: Decimal
    potential: bool
    message: str
    end_date: Optional[datetime]

    @classmethod
    def from_offer(cls, offer: ItemOffer) -> 'ItemOfferResponse':
        return cls(
            item_id=offer.item_id,
            rule_id=offer.rule_id,
            unit_price=offer.unit_price,
            discounted_price=offer.discounted_price,
            percent_off=offer.percent_off,
            potential=offer.potential,
            message=offer.message,
            end_date=offer.end_date,
        )


def _locales(locale: Optional[str]) -> tuple:
    fallback = tuple(state.settings.fallback_locales)
    return (locale,) + fallback if locale else fallback


# Endpoints

@router.get("", response_model=list[DiscountRuleResponse])
async def list_discounts(include_inactive: bool = True, locale: Optional[str] = None):
    """List all discount rules in the loaded snapshot."""
    locales = _locales(locale)
    rules = state.discount_service.list_rules(include_inactive=include_inactive)
    return [DiscountRuleResponse.from_rule(rule, locales) for rule in rules]


@router.get("/stats")
async def get_stats():
    """Get rule statistics."""
    return state.discount_service.get_stats()


@router.get("/{rule_id}", response_model=DiscountRuleResponse)
async def get_discount(rule_id: str, locale: Optional[str] = None):
    """Get a single rule by ID."""
    rule = state.discount_service.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail=f"Discount '{rule_id}' not found")
    return DiscountRuleResponse.from_rule(rule, _locales(locale))


@router.post("/validate", response_model=ValidationResponse)
async def validate_discount(rule_data: DiscountRuleIn):
    """Lint a rule definition against the loaded snapshot."""
    result = state.discount_service.validate_rule(rule_data.to_rule())
    return ValidationResponse(
        valid=result.valid,
        errors=result.errors,
        warnings=result.warnings,
    )


@router.post("/coupon", response_model=CouponResponse)
async def check_coupon(request: CouponRequest):
    """Look up a coupon code so the checkout screen can confirm it."""
    now = naive_local(request.now) or datetime.now()
    try:
        rule = state.discount_service.validate_coupon_code(request.code, now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if rule is None:
        return CouponResponse(valid=False, message="Invalid or expired coupon code")
    return CouponResponse(
        valid=True,
        message=f"{rule.percent_off}% off {rule.category_id}",
        discount=DiscountRuleResponse.from_rule(rule, _locales(None)),
    )


@router.post("/reload")
async def reload_discounts():
    """Re-read the compiled discount snapshot from disk."""
    count = state.catalog.reload()
    return {
        "success": state.catalog.loaded,
        "rules_count": count,
    }


@router.post("/offers", response_model=list[ItemOfferResponse])
async def menu_offers(request: OffersRequest):
    """Best current or potential discount per menu item, in request order."""
    items = [MenuItem(**item.model_dump()) for item in request.items]
    now = naive_local(request.now) or datetime.now()
    try:
        offers = state.discount_service.item_offers(
            items,
            now,
            cart_quantities=request.cart_quantities,
            minor_units=state.engine.minor_units,
            locales=_locales(request.locale),
        )
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e))

    return [ItemOfferResponse.from_offer(offers[i.item_id]) for i in items if i.item_id in offers]
