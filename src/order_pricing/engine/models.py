"""
Data models for the pricing engine.

Uses frozen dataclasses so a request and its result can be shared across
checkout sessions without copying.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Union

from ..localization import resolve_text


# Coupon outcomes reported on a PricingResult
COUPON_NONE = "none"
COUPON_APPLIED = "applied"
COUPON_NOT_FOUND = "not_found"
COUPON_NOT_APPLIED = "not_applied"


def naive_local(value: Optional[datetime]) -> Optional[datetime]:
    """Rule windows and `now` are naive local time; convert aware datetimes to match."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass(frozen=True)
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class AllInCategory:
    """Rule targets every line item in its category."""

    def includes(self, item_id: str) -> bool:
        return True

    def describe(self) -> str:
        return "all items in category"


@dataclass(frozen=True)
class SpecificItems:
    """Rule targets only the listed item ids. An empty set targets nothing."""
    item_ids: frozenset = frozenset()

    def includes(self, item_id: str) -> bool:
        return item_id in self.item_ids

    def describe(self) -> str:
        if not self.item_ids:
            return "no items"
        return "items " + ", ".join(sorted(self.item_ids))


ItemScope = Union[AllInCategory, SpecificItems]


@dataclass(frozen=True)
class LineItem:
    """A single cart line submitted for pricing."""
    item_id: str
    unit_price: Decimal
    quantity: int
    category_id: str
    name: str = ""

    @property
    def extended_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DiscountRule:
    """A percentage-off rule scoped to a category or a set of items."""
    id: str
    category_id: str
    percent_off: Decimal
    scope: ItemScope = AllInCategory()
    min_quantity: int = 0
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    coupon_code: Optional[str] = None
    customer_restricted: bool = False

    # Presentation only
    name: str = ""
    names: Mapping[str, str] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'start_date', naive_local(self.start_date))
        object.__setattr__(self, 'end_date', naive_local(self.end_date))
        object.__setattr__(self, 'names', MappingProxyType(dict(self.names)))

    @property
    def is_coupon(self) -> bool:
        return bool(self.coupon_code)

    def display_name(self, locales=()) -> str:
        """Name in the first available locale, falling back to `name` then id."""
        return resolve_text(self.names, locales, default=self.name or self.id)

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True)
class PricingRequest:
    """A cart plus the discount snapshot to evaluate it against."""
    line_items: tuple
    candidate_discounts: tuple
    now: datetime
    supplied_coupon_code: Optional[str] = None

    # Set by the caller once the per-customer coupon check has approved the code
    coupon_authorized: bool = False

    def __post_init__(self):
        # Accept lists from callers but keep the request immutable
        object.__setattr__(self, 'line_items', tuple(self.line_items))
        object.__setattr__(self, 'candidate_discounts', tuple(self.candidate_discounts))
        object.__setattr__(self, 'now', naive_local(self.now))


@dataclass(frozen=True)
class PricingResult:
    """Complete, immutable pricing breakdown for one request."""
    subtotal: Decimal
    applied_discounts: Mapping[str, Decimal]
    total: Decimal
    applied_rules: Mapping[str, str] = field(default_factory=dict)
    coupon_status: str = COUPON_NONE
    coupon_code: Optional[str] = None
    warnings: tuple = ()
    trace: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, 'applied_discounts', MappingProxyType(dict(self.applied_discounts)))
        object.__setattr__(self, 'applied_rules', MappingProxyType(dict(self.applied_rules)))

    @property
    def discount_total(self) -> Decimal:
        return sum(self.applied_discounts.values(), Decimal('0'))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_order_fields(self) -> dict:
        """Fields the order collaborator copies onto an order record."""
        fields = {
            "subtotal": self.subtotal,
            "discounts": dict(self.applied_discounts),
            "total": self.total,
        }
        if self.coupon_status == COUPON_APPLIED:
            fields["coupon_code"] = self.coupon_code
        return fields
