"""
Rule Matcher - Matches discount rules against a category group.

Used by the pricing engine to decide which rules are eligible for
a group of line items and how much each one would take off.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from .errors import InvalidInput
from .models import DiscountRule, LineItem, PricingRequest
from .money import HUNDRED, ZERO, round_money, to_decimal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryGroup:
    """Line items of one category, with their validated prices."""
    category_id: str
    items: tuple
    prices: tuple  # Decimal unit price per item, same order as items

    @property
    def quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def basis_for(self, rule: DiscountRule) -> Decimal:
        """Sum of unit_price × quantity over the items the rule targets."""
        basis = ZERO
        for item, price in zip(self.items, self.prices):
            if rule.scope.includes(item.item_id):
                basis += price * item.quantity
        return basis


@dataclass(frozen=True)
class MatchedRule:
    """A rule that matched with context."""
    rule_id: str
    name: str
    basis: Decimal
    amount: Decimal
    is_coupon: bool
    match_reason: str


def validate_percent(rule: DiscountRule) -> Decimal:
    """Return the rule's percent_off as Decimal, raising InvalidInput if out of range."""
    try:
        percent = to_decimal(rule.percent_off)
    except ValueError:
        raise InvalidInput(f"Discount {rule.id}: percent_off {rule.percent_off!r} is not numeric") from None
    if percent < ZERO or percent > HUNDRED:
        raise InvalidInput(f"Discount {rule.id}: percent_off {percent} must be between 0 and 100")
    return percent


def _within_window(rule: DiscountRule, now: datetime) -> Optional[str]:
    if rule.start_date is not None and now < rule.start_date:
        return f"starts {rule.start_date.isoformat()}"
    if rule.end_date is not None and now > rule.end_date:
        return f"ended {rule.end_date.isoformat()}"
    return None


class RuleMatcher:
    """
    Matches discount rules to category groups.

    Checks run in a fixed order (active, date window, quantity, coupon,
    authorization) so the first failing check is the one reported.
    """

    def __init__(self, minor_units: int = 2):
        self.minor_units = minor_units

    def rejection_reason(
        self,
        rule: DiscountRule,
        group: CategoryGroup,
        request: PricingRequest,
    ) -> Optional[str]:
        """Why the rule is ineligible for this group, or None if it is eligible."""
        if not rule.active:
            return "inactive"

        window = _within_window(rule, request.now)
        if window:
            return window

        if group.quantity < rule.min_quantity:
            return f"needs qty>={rule.min_quantity}, have {group.quantity}"

        if rule.is_coupon:
            if request.supplied_coupon_code is None:
                return f"requires coupon {rule.coupon_code}"
            if request.supplied_coupon_code != rule.coupon_code:
                return "coupon code does not match"
            if rule.customer_restricted and not request.coupon_authorized:
                return "coupon not authorized for this customer"

        return None

    def evaluate(
        self,
        rule: DiscountRule,
        group: CategoryGroup,
        request: PricingRequest,
    ) -> Optional[MatchedRule]:
        """
        Evaluate one rule against one category group.

        Returns a MatchedRule with the rounded discount amount, or None if the
        rule is not eligible.
        """
        percent = validate_percent(rule)

        reason = self.rejection_reason(rule, group, request)
        if reason:
            logger.debug("Discount %s skipped for %s: %s", rule.id, group.category_id, reason)
            return None

        reasons = [f"category={group.category_id}", rule.scope.describe()]
        if rule.min_quantity:
            reasons.append(f"qty>={rule.min_quantity}")
        if rule.start_date is not None:
            reasons.append(f"after {rule.start_date.isoformat()}")
        if rule.end_date is not None:
            reasons.append(f"before {rule.end_date.isoformat()}")
        if rule.is_coupon:
            reasons.append(f"coupon={rule.coupon_code}")

        basis = group.basis_for(rule)
        amount = round_money(basis * percent / HUNDRED, self.minor_units)

        return MatchedRule(
            rule_id=rule.id,
            name=rule.display_name(),
            basis=basis,
            amount=amount,
            is_coupon=rule.is_coupon,
            match_reason=", ".join(reasons),
        )

    def find_matching_rules(
        self,
        rules: Sequence[DiscountRule],
        group: CategoryGroup,
        request: PricingRequest,
    ) -> list[MatchedRule]:
        """
        Find all eligible rules for the group.

        Returns rules sorted best first: largest amount, then rule id ascending.
        """
        matched = []
        for rule in rules:
            if rule.category_id != group.category_id:
                continue
            match = self.evaluate(rule, group, request)
            if match is not None:
                matched.append(match)

        matched.sort(key=lambda m: (-m.amount, m.rule_id))
        return matched


def group_by_category(items: Sequence[LineItem], prices: Sequence[Decimal]) -> list[CategoryGroup]:
    """Group line items by category, keeping first-seen category order."""
    buckets: dict[str, list] = {}
    for item, price in zip(items, prices):
        buckets.setdefault(item.category_id, []).append((item, price))

    return [
        CategoryGroup(
            category_id=category_id,
            items=tuple(item for item, _ in pairs),
            prices=tuple(price for _, price in pairs),
        )
        for category_id, pairs in buckets.items()
    ]
