"""
Pricing Engine - Subtotal, per-category discount and total resolution.

Every evaluation is a pure function of its PricingRequest:
- Subtotal is summed in Decimal before any discount
- Each category keeps at most one discount (largest amount, then lowest id)
- Amounts are rounded half-up to the currency's minor unit on output only
- Execution trace and user-facing warnings travel with the result
"""
import logging
from decimal import Decimal

from ..config.settings import Settings
from .errors import InvalidInput
from .models import (
    COUPON_APPLIED,
    COUPON_NONE,
    COUPON_NOT_APPLIED,
    COUPON_NOT_FOUND,
    LineItem,
    PricingRequest,
    PricingResult,
    TraceStep,
)
from .money import ZERO, round_money, to_decimal
from .rule_matcher import RuleMatcher, group_by_category


logger = logging.getLogger(__name__)


def _validate_line(item: LineItem) -> Decimal:
    """Return the item's unit price as Decimal, raising InvalidInput if malformed."""
    try:
        price = to_decimal(item.unit_price)
    except ValueError:
        raise InvalidInput(f"Item {item.item_id}: unit_price {item.unit_price!r} is not numeric") from None
    if price < ZERO:
        raise InvalidInput(f"Item {item.item_id}: unit_price {price} must not be negative")

    qty = item.quantity
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise InvalidInput(f"Item {item.item_id}: quantity {qty!r} must be an integer")
    if qty < 1:
        raise InvalidInput(f"Item {item.item_id}: quantity {qty} must be at least 1")
    return price


class PricingEngine:
    """
    Core pricing engine that resolves a cart total from discount rules.

    Resolution order:
    1. Validate every line item and sum the subtotal
    2. Group line items by category
    3. Match rules of the same category (active, dates, quantity, coupon)
    4. Keep the largest discount per category, ties to the lowest rule id
    5. Total = subtotal - discounts, clamped at zero

    The engine holds only its currency configuration, so one instance can
    serve concurrent checkouts.
    """

    def __init__(self, minor_units: int = 2):
        if minor_units < 0:
            raise ValueError("minor_units must not be negative")
        self.minor_units = minor_units
        self.rule_matcher = RuleMatcher(minor_units=minor_units)

    @classmethod
    def from_settings(cls, settings: Settings) -> 'PricingEngine':
        return cls(minor_units=settings.minor_units)

    def compute_pricing(self, request: PricingRequest) -> PricingResult:
        """
        Calculate the pricing breakdown with full traceability.

        Args:
            request: PricingRequest with line items, discount snapshot and coupon

        Returns:
            PricingResult with subtotal, per-category discounts and total

        Raises:
            InvalidInput: a line item or an evaluated rule is malformed
        """
        trace = []
        warnings = []

        prices = [_validate_line(item) for item in request.line_items]
        subtotal = sum(
            (price * item.quantity for item, price in zip(request.line_items, prices)),
            ZERO,
        )
        trace.append(TraceStep("Subtotal", f"{len(prices)} line items", str(subtotal)))

        coupon = request.supplied_coupon_code or None

        applied_discounts: dict[str, Decimal] = {}
        applied_rules: dict[str, str] = {}
        coupon_won = False

        for group in group_by_category(request.line_items, prices):
            matches = self.rule_matcher.find_matching_rules(
                request.candidate_discounts, group, request
            )
            best = matches[0] if matches else None

            if best is None or best.amount <= ZERO:
                trace.append(TraceStep("No Discount", f"No eligible discount for {group.category_id}"))
                continue

            applied_discounts[group.category_id] = best.amount
            applied_rules[group.category_id] = best.rule_id
            coupon_won = coupon_won or best.is_coupon
            trace.append(TraceStep(
                "Discount Applied",
                f"{best.name} ({best.rule_id}) on {group.category_id}: {best.match_reason}",
                str(best.amount),
            ))
            logger.debug("Category %s discounted %s by rule %s", group.category_id, best.amount, best.rule_id)

        coupon_status = COUPON_NONE
        if coupon is not None:
            known = any(rule.coupon_code == coupon for rule in request.candidate_discounts)
            if coupon_won:
                coupon_status = COUPON_APPLIED
            elif not known:
                coupon_status = COUPON_NOT_FOUND
                warnings.append(f"Coupon code '{coupon}' not recognized")
            else:
                coupon_status = COUPON_NOT_APPLIED
                warnings.append(f"Coupon code '{coupon}' does not apply to this order")
            trace.append(TraceStep("Coupon", f"Supplied code {coupon}", coupon_status))

        rounded_subtotal = round_money(subtotal, self.minor_units)
        discount_sum = sum(applied_discounts.values(), ZERO)
        total = rounded_subtotal - discount_sum
        if total < ZERO:
            trace.append(TraceStep("Clamp", "Discounts exceed subtotal, total clamped", "0"))
            total = ZERO
        total = round_money(total, self.minor_units)
        trace.append(TraceStep("Total", f"{rounded_subtotal} - {discount_sum}", str(total)))

        return PricingResult(
            subtotal=rounded_subtotal,
            applied_discounts=applied_discounts,
            total=total,
            applied_rules=applied_rules,
            coupon_status=coupon_status,
            coupon_code=coupon,
            warnings=tuple(warnings),
            trace=tuple(trace),
        )


def compute_pricing(request: PricingRequest, minor_units: int = 2) -> PricingResult:
    """Price a request with a throwaway engine."""
    return PricingEngine(minor_units=minor_units).compute_pricing(request)
