"""
Discount Service - read-only queries over the discount rule snapshot.

Rules are authored and stored by the back-office; this service only loads
the compiled snapshot, answers lookups, previews menu offers and lints
rule definitions.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional, Sequence

import pandas as pd

from ..engine.errors import InvalidInput
from ..engine.models import DiscountRule, SpecificItems, naive_local
from ..engine.money import HUNDRED, round_money, to_decimal
from ..engine.rule_matcher import validate_percent
from ..rules.compile_rules import load_compiled_rules


logger = logging.getLogger(__name__)


def _in_window(rule: DiscountRule, now: datetime) -> bool:
    now = naive_local(now)
    if rule.start_date is not None and now < rule.start_date:
        return False
    if rule.end_date is not None and now > rule.end_date:
        return False
    return True


def _scopes_overlap(a: DiscountRule, b: DiscountRule) -> bool:
    a_items = a.scope.item_ids if isinstance(a.scope, SpecificItems) else None
    b_items = b.scope.item_ids if isinstance(b.scope, SpecificItems) else None
    if a_items is None or b_items is None:
        # Whole-category scope overlaps anything non-empty
        return bool(a_items is None or a_items) and bool(b_items is None or b_items)
    return bool(a_items & b_items)


class DiscountCatalog:
    """
    Snapshot of discount rules loaded from a compiled JSON file.

    `rules` is replaced as a whole on reload, so callers holding the old
    tuple keep a consistent view.
    """

    def __init__(self, compiled_rules_path: Optional[Path] = None, rules: Optional[list] = None):
        self.path = compiled_rules_path
        self.rules: tuple = tuple(rules or ())
        self.loaded = rules is not None
        self.loaded_at: Optional[datetime] = datetime.now() if self.loaded else None

        if rules is None and compiled_rules_path and compiled_rules_path.exists():
            self.reload()

    def reload(self) -> int:
        """Re-read the snapshot file. Returns the number of rules loaded."""
        if not self.path or not self.path.exists():
            logger.warning("Discount snapshot not found at %s", self.path)
            self.rules = ()
            self.loaded = False
            return 0

        self.rules = tuple(load_compiled_rules(self.path))
        self.loaded = True
        self.loaded_at = datetime.now()
        logger.info("Loaded %d discount rules from %s", len(self.rules), self.path)
        return len(self.rules)

    def snapshot(self) -> tuple:
        return self.rules


@dataclass
class ValidationResult:
    """Result of rule validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MenuItem:
    """An item as listed on the menu, before it is in a cart."""
    item_id: str
    category_id: str
    unit_price: Decimal


@dataclass(frozen=True)
class ItemOffer:
    """
    Best discount to show next to a menu item.

    `potential` offers are not earned yet: the cart needs more items of the
    category before the rule applies at checkout.
    """
    item_id: str
    rule_id: str
    unit_price: Decimal
    discounted_price: Decimal
    percent_off: Decimal
    potential: bool
    message: str
    end_date: Optional[datetime] = None


class DiscountService:
    """Service for querying discount rules."""

    def __init__(self, catalog: DiscountCatalog):
        self.catalog = catalog

    def list_rules(self, include_inactive: bool = True) -> list[DiscountRule]:
        """List all rules in the snapshot."""
        return [r for r in self.catalog.snapshot() if include_inactive or r.active]

    def get_rule(self, rule_id: str) -> Optional[DiscountRule]:
        """Get a single rule by ID."""
        for rule in self.catalog.snapshot():
            if rule.id == rule_id:
                return rule
        return None

    def regular_active_rules(self, now: datetime) -> list[DiscountRule]:
        """Active, in-window rules that need neither a coupon nor authorization."""
        return [
            r for r in self.catalog.snapshot()
            if r.active and _in_window(r, now) and not r.is_coupon and not r.customer_restricted
        ]

    def item_offers(
        self,
        items: Sequence[MenuItem],
        now: datetime,
        cart_quantities: Optional[Mapping[str, int]] = None,
        minor_units: int = 2,
        locales=(),
    ) -> dict[str, ItemOffer]:
        """
        Best offer per menu item, keyed by item id.

        Item-specific rules are tried before whole-category rules. A rule whose
        quantity threshold is not met yet is offered as potential, with a hint
        of how many more items to add. `cart_quantities` maps category id to
        the quantity already in the cart, the same group quantity checkout
        uses. Coupon rules are never offered. Items with no offer are omitted.
        """
        cart_quantities = cart_quantities or {}
        rules = self.regular_active_rules(now)
        offers = {}

        for item in items:
            try:
                price = to_decimal(item.unit_price)
            except ValueError:
                raise InvalidInput(f"Item {item.item_id}: unit_price {item.unit_price!r} is not numeric") from None
            if price < 0:
                raise InvalidInput(f"Item {item.item_id}: unit_price {price} must not be negative")

            in_category = [r for r in rules if r.category_id == item.category_id]
            specific = [
                r for r in in_category
                if isinstance(r.scope, SpecificItems) and r.scope.includes(item.item_id)
            ]
            whole = [r for r in in_category if not isinstance(r.scope, SpecificItems)]
            have = cart_quantities.get(item.category_id, 0)

            for candidates in (specific, whole):
                offer = self._best_offer(item, price, candidates, have, minor_units, locales)
                if offer is not None:
                    offers[item.item_id] = offer
                    break

        return offers

    def _best_offer(self, item, price, rules, have, minor_units, locales) -> Optional[ItemOffer]:
        percents = [(validate_percent(r), r) for r in rules]
        percents = [(p, r) for p, r in percents if p > 0]

        earned = [(p, r) for p, r in percents if have >= r.min_quantity]
        if earned:
            percent, rule = min(earned, key=lambda pr: (-pr[0], pr[1].id))
            message = rule.display_name(locales)
            potential = False
        else:
            tiered = [(p, r) for p, r in percents if r.min_quantity > have]
            if not tiered:
                return None
            percent, rule = min(tiered, key=lambda pr: (-pr[0], pr[1].id))
            message = f"Add {rule.min_quantity - have} more to cart for {format(percent.normalize(), 'f')}% off"
            potential = True

        return ItemOffer(
            item_id=item.item_id,
            rule_id=rule.id,
            unit_price=round_money(price, minor_units),
            discounted_price=round_money(price * (HUNDRED - percent) / HUNDRED, minor_units),
            percent_off=percent,
            potential=potential,
            message=message,
            end_date=rule.end_date,
        )

    def validate_coupon_code(self, code: str, now: datetime) -> Optional[DiscountRule]:
        """
        Find the active, in-window rule carrying this exact coupon code.

        Returns None when the code is unknown or expired. Raises ValueError
        for a blank code.
        """
        if not code or not code.strip():
            raise ValueError("Coupon code cannot be empty")

        matches = sorted(
            (r for r in self.catalog.snapshot() if r.coupon_code == code and r.active),
            key=lambda r: r.id,
        )
        for rule in matches:
            if _in_window(rule, now):
                return rule
        return None

    def validate_rule(self, rule: DiscountRule, now: Optional[datetime] = None) -> ValidationResult:
        """Validate a rule definition before it is published."""
        result = ValidationResult(valid=True)
        now = naive_local(now) or datetime.now()

        if not rule.id:
            result.errors.append("Discount id is required")
            result.valid = False

        if not rule.category_id:
            result.errors.append("Category is required")
            result.valid = False

        try:
            percent = to_decimal(rule.percent_off)
            if percent < 0 or percent > 100:
                result.errors.append("Percent off must be between 0 and 100")
                result.valid = False
            elif percent == 0:
                result.warnings.append("Percent off is 0, rule will never discount anything")
        except ValueError:
            result.errors.append("Percent off must be a number")
            result.valid = False

        if rule.min_quantity < 0:
            result.errors.append("Minimum quantity must not be negative")
            result.valid = False

        if rule.start_date and rule.end_date and rule.start_date > rule.end_date:
            result.errors.append("Start date must be before end date")
            result.valid = False

        if rule.end_date and rule.end_date < now:
            result.warnings.append("Rule has expired (end date is in the past)")

        if isinstance(rule.scope, SpecificItems) and not rule.scope.item_ids:
            result.warnings.append("Specific item list is empty, rule applies to no items")

        if rule.customer_restricted and not rule.is_coupon:
            result.warnings.append("Customer restriction has no effect without a coupon code")

        if result.valid:
            result.warnings.extend(self._check_conflicts(rule))

        return result

    def _check_conflicts(self, rule: DiscountRule) -> list[str]:
        """Check for rules that compete for the same items."""
        warnings = []

        for existing in self.catalog.snapshot():
            if existing.id == rule.id or existing.category_id != rule.category_id:
                continue
            if not existing.active:
                continue
            # An order carries at most one coupon code
            if rule.is_coupon and existing.is_coupon and existing.coupon_code != rule.coupon_code:
                continue

            if _scopes_overlap(rule, existing):
                message = (
                    f"Overlaps rule '{existing.id}' in category '{rule.category_id}' "
                    f"({existing.percent_off}% vs {rule.percent_off}%), largest discount wins"
                )
                coupon = rule.coupon_code or existing.coupon_code
                if coupon:
                    message += f" when coupon '{coupon}' is supplied"
                warnings.append(message)

        return warnings

    def get_stats(self, now: Optional[datetime] = None) -> dict:
        """Get statistics about rules."""
        now = naive_local(now) or datetime.now()
        rules = self.list_rules()

        if not rules:
            return {
                'total': 0, 'active': 0, 'inactive': 0, 'expired': 0,
                'coupons': 0, 'by_category': {},
            }

        df = pd.DataFrame([{
            'category_id': r.category_id,
            'active': r.active,
            'expired': bool(r.end_date and r.end_date < now),
            'coupon': r.is_coupon,
        } for r in rules])

        active = int(df['active'].sum())
        return {
            'total': len(df),
            'active': active,
            'inactive': len(df) - active,
            'expired': int(df['expired'].sum()),
            'coupons': int(df['coupon'].sum()),
            'by_category': {k: int(v) for k, v in df['category_id'].value_counts().sort_index().items()},
        }
