"""
Rule Compiler - Validates and compiles discount rules from CSV to JSON.

Reads discounts.csv (the back-office export), validates every row and
outputs compiled_discounts.json, the snapshot the pricing API serves.
"""
import json
import sys
from datetime import datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pandas as pd

from ..engine.models import AllInCategory, DiscountRule, SpecificItems, naive_local
from ..engine.money import to_decimal


CSV_COLUMNS = [
    'discount_id', 'name', 'description', 'category_id', 'specific_item_ids',
    'min_quantity', 'percent_off', 'active', 'start_date', 'end_date',
    'coupon_code', 'customer_restricted',
]

NAME_PREFIX = 'name_'

# Cell value meaning "a specific list with no items in it"
EMPTY_ITEM_LIST = ('-', '[]')


def parse_bool(value: str) -> bool:
    """Parse a boolean from CSV string."""
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def snapshot_bool(value) -> bool:
    """JSON bools as-is; strings from hand-edited snapshots go through parse_bool."""
    if isinstance(value, str):
        return parse_bool(value)
    return bool(value)


def parse_optional_str(value: str) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if not value or value.strip() == '':
        return None
    return value.strip()


def parse_optional_int(value: str) -> Optional[int]:
    """Parse optional integer."""
    if not value or value.strip() == '':
        return None
    return int(value)


def parse_scope(value: str):
    """Empty cell = whole category, '-' = no items, else ';'-separated ids."""
    text = (value or '').strip()
    if not text:
        return AllInCategory()
    if text in EMPTY_ITEM_LIST:
        return SpecificItems(frozenset())
    return SpecificItems(frozenset(i.strip() for i in text.split(';') if i.strip()))


def parse_date(value: str, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime.

    A date-only end bound covers the whole day. Values with a UTC offset
    are converted to naive local time.
    """
    text = parse_optional_str(value)
    if text is None:
        return None
    parsed = naive_local(datetime.fromisoformat(text))
    if end_of_day and len(text) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed


def validate_rule(row: dict, line_num: int) -> tuple[Optional[DiscountRule], list[str]]:
    """
    Validate and parse a discount rule from a CSV row.

    Returns (rule, errors) - rule is None if validation failed.
    """
    errors = []

    rule_id = parse_optional_str(row.get('discount_id', ''))
    if not rule_id:
        errors.append(f"Line {line_num}: discount_id is required")
        return None, errors

    category_id = parse_optional_str(row.get('category_id', ''))
    if not category_id:
        errors.append(f"Line {line_num}: category_id is required")

    try:
        min_quantity = parse_optional_int(row.get('min_quantity', '')) or 0
        if min_quantity < 0:
            errors.append(f"Line {line_num}: min_quantity must not be negative")
    except ValueError:
        errors.append(f"Line {line_num}: min_quantity must be an integer")
        min_quantity = 0

    percent_off = Decimal('0')
    try:
        percent_off = to_decimal(row.get('percent_off', ''))
        if percent_off < 0 or percent_off > 100:
            errors.append(f"Line {line_num}: percent_off must be between 0 and 100")
    except ValueError:
        errors.append(f"Line {line_num}: percent_off must be numeric")

    dates = {}
    for date_field in ('start_date', 'end_date'):
        try:
            dates[date_field] = parse_date(row.get(date_field, ''), end_of_day=date_field == 'end_date')
        except ValueError:
            errors.append(f"Line {line_num}: {date_field} must be YYYY-MM-DD format")
            dates[date_field] = None

    if dates['start_date'] and dates['end_date'] and dates['start_date'] > dates['end_date']:
        errors.append(f"Line {line_num}: start_date must be before end_date")

    if errors:
        return None, errors

    names = {
        key[len(NAME_PREFIX):]: value.strip()
        for key, value in row.items()
        if key.startswith(NAME_PREFIX) and value and value.strip()
    }

    return DiscountRule(
        id=rule_id,
        category_id=category_id,
        percent_off=percent_off,
        scope=parse_scope(row.get('specific_item_ids', '')),
        min_quantity=min_quantity,
        active=parse_bool(row.get('active', 'false')),
        start_date=dates['start_date'],
        end_date=dates['end_date'],
        coupon_code=parse_optional_str(row.get('coupon_code', '')),
        customer_restricted=parse_bool(row.get('customer_restricted', 'false')),
        name=parse_optional_str(row.get('name', '')) or rule_id,
        names=names,
        description=parse_optional_str(row.get('description', '')) or "",
    ), []


def rule_to_dict(rule: DiscountRule) -> dict:
    """JSON-ready representation of a rule."""
    if isinstance(rule.scope, SpecificItems):
        item_ids = sorted(rule.scope.item_ids)
    else:
        item_ids = None

    return {
        "id": rule.id,
        "name": rule.name,
        "names": dict(rule.names),
        "description": rule.description,
        "category_id": rule.category_id,
        "specific_item_ids": item_ids,
        "min_quantity": rule.min_quantity,
        "percent_off": str(rule.percent_off),
        "active": rule.active,
        "start_date": rule.start_date.isoformat() if rule.start_date else None,
        "end_date": rule.end_date.isoformat() if rule.end_date else None,
        "coupon_code": rule.coupon_code,
        "customer_restricted": rule.customer_restricted,
    }


def rule_from_dict(data: dict) -> DiscountRule:
    """Inverse of rule_to_dict. A null item list means the whole category."""
    item_ids = data.get('specific_item_ids')
    scope = AllInCategory() if item_ids is None else SpecificItems(frozenset(item_ids))

    start = data.get('start_date')
    end = data.get('end_date')

    return DiscountRule(
        id=data['id'],
        category_id=data['category_id'],
        percent_off=to_decimal(data.get('percent_off', '0')),
        scope=scope,
        min_quantity=int(data.get('min_quantity') or 0),
        active=snapshot_bool(data.get('active', False)),
        start_date=naive_local(datetime.fromisoformat(start)) if start else None,
        end_date=naive_local(datetime.fromisoformat(end)) if end else None,
        coupon_code=data.get('coupon_code') or None,
        customer_restricted=snapshot_bool(data.get('customer_restricted', False)),
        name=data.get('name') or data['id'],
        names=dict(data.get('names') or {}),
        description=data.get('description') or "",
    )


def read_rules_csv(rules_csv: Path) -> pd.DataFrame:
    """Load the CSV as strings, blanks as '' and headers stripped."""
    df = pd.read_csv(rules_csv, dtype=str, keep_default_na=False).fillna('')
    df.columns = [c.strip() for c in df.columns]
    return df


def compile_rules(
    rules_csv: Path,
    output_json: Path,
    verbose: bool = True
) -> tuple[bool, list[DiscountRule], list[str]]:
    """
    Compile rules from CSV to JSON.

    Returns (success, rules, errors).
    """
    all_errors = []
    rules = []

    if not rules_csv.exists():
        all_errors.append(f"Rules file not found: {rules_csv}")
        return False, [], all_errors

    df = read_rules_csv(rules_csv)
    missing = [c for c in ('discount_id', 'category_id', 'percent_off') if c not in df.columns]
    if missing:
        all_errors.append(f"Missing required columns: {', '.join(missing)}")
        return False, [], all_errors

    seen = set()
    for line_num, row in enumerate(df.to_dict(orient='records'), start=2):  # +2 for 1-indexed header row
        rule, errors = validate_rule(row, line_num)

        if errors:
            all_errors.extend(errors)
        elif rule:
            if rule.id in seen:
                all_errors.append(f"Line {line_num}: duplicate discount_id '{rule.id}'")
                continue
            seen.add(rule.id)
            rules.append(rule)

    if all_errors:
        if verbose:
            print("Validation errors:")
            for err in all_errors:
                print(f"  ❌ {err}")
        return False, rules, all_errors

    rules.sort(key=lambda r: r.id)

    output_data = {
        "compiled_at": datetime.now().isoformat(),
        "source_file": str(rules_csv),
        "total_rules": len(rules),
        "active_rules": sum(1 for r in rules if r.active),
        "rules": [rule_to_dict(rule) for rule in rules],
    }

    output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(output_json, 'w', encoding='utf-8') as f:
        json.dump(output_data, f, indent=2, ensure_ascii=False)

    if verbose:
        print(f"✅ Compiled {len(rules)} rules ({output_data['active_rules']} active)")
        print(f"   Output: {output_json}")

    return True, rules, []


def load_compiled_rules(path: Path) -> list[DiscountRule]:
    """Load a compiled snapshot back into DiscountRule values."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return [rule_from_dict(r) for r in data.get('rules', [])]


def main():
    """CLI entry point."""
    from ..config.settings import get_settings

    settings = get_settings()

    print("Compiling discount rules...")
    success, rules, errors = compile_rules(settings.rules_csv, settings.compiled_rules)

    if not success:
        print(f"\n❌ Compilation failed with {len(errors)} errors")
        sys.exit(1)


if __name__ == "__main__":
    main()
