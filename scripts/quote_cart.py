#!/usr/bin/env python
"""
Price a cart from the command line against the compiled discount snapshot.

Usage:
    python scripts/quote_cart.py ITEM_ID:CATEGORY:PRICE:QTY [...] [--coupon CODE] [--authorized]

Example:
    python scripts/quote_cart.py kebab-koobideh:mains:12.50:2 baklava:desserts:4.00:3 --coupon WELCOME10
"""
import argparse
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from order_pricing.config.settings import get_settings
from order_pricing.engine import InvalidInput, LineItem, PricingEngine, PricingRequest
from order_pricing.services.discount_service import DiscountCatalog


def parse_item(arg: str) -> LineItem:
    item_id, category_id, price, qty = arg.split(':')
    return LineItem(item_id=item_id, unit_price=Decimal(price), quantity=int(qty), category_id=category_id)


def main():
    parser = argparse.ArgumentParser(description="Price a cart")
    parser.add_argument('items', nargs='+', help="ITEM_ID:CATEGORY:PRICE:QTY")
    parser.add_argument('--coupon', default=None)
    parser.add_argument('--authorized', action='store_true', help="Customer passed the coupon check")
    args = parser.parse_args()

    settings = get_settings()
    catalog = DiscountCatalog(settings.compiled_rules)
    if not catalog.loaded:
        print(f"⚠️ No compiled rules at {settings.compiled_rules}; run scripts/build_all.py first")

    request = PricingRequest(
        line_items=[parse_item(s) for s in args.items],
        candidate_discounts=catalog.snapshot(),
        supplied_coupon_code=args.coupon,
        coupon_authorized=args.authorized,
        now=datetime.now(),
    )

    try:
        result = PricingEngine.from_settings(settings).compute_pricing(request)
    except InvalidInput as e:
        print(f"❌ {e}")
        sys.exit(1)

    print(result.get_trace_text())
    print()
    print(f"Subtotal: {result.subtotal} {settings.currency_code}")
    for category_id, amount in result.applied_discounts.items():
        print(f"  -{amount} {category_id} ({result.applied_rules[category_id]})")
    print(f"Total:    {result.total} {settings.currency_code}")
    for warning in result.warnings:
        print(f"⚠️ {warning}")


if __name__ == "__main__":
    main()
