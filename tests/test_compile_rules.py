"""
Rule compiler tests - CSV validation and snapshot loading.
"""
import csv
import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from order_pricing.engine.models import AllInCategory, SpecificItems
from order_pricing.rules.compile_rules import (
    CSV_COLUMNS,
    compile_rules,
    load_compiled_rules,
    parse_date,
    parse_scope,
)

SAMPLE_CSV = Path(src_path) / 'order_pricing' / 'rules' / 'discounts.csv'


def write_csv(path: Path, rows: list[dict]) -> Path:
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow({col: row.get(col, '') for col in CSV_COLUMNS})
    return path


def valid_row(**overrides) -> dict:
    row = {
        'discount_id': 'MAINS10',
        'name': 'Mains 10',
        'category_id': 'mains',
        'percent_off': '10',
        'active': 'true',
    }
    row.update(overrides)
    return row


def test_parse_scope_variants():
    assert parse_scope('') == AllInCategory()
    assert parse_scope('-') == SpecificItems(frozenset())
    assert parse_scope('[]') == SpecificItems(frozenset())
    assert parse_scope('kebab; stew;') == SpecificItems(frozenset({'kebab', 'stew'}))


def test_date_only_end_covers_whole_day():
    assert parse_date('2026-03-31', end_of_day=True) == datetime(2026, 3, 31, 23, 59, 59, 999999)
    assert parse_date('2026-03-31') == datetime(2026, 3, 31)
    assert parse_date('2026-03-31T18:00:00', end_of_day=True) == datetime(2026, 3, 31, 18, 0)
    assert parse_date('') is None


def test_sample_rules_compile(tmp_path):
    """The shipped discounts.csv compiles cleanly."""
    output = tmp_path / 'compiled.json'
    success, rules, errors = compile_rules(SAMPLE_CSV, output, verbose=False)

    assert success, errors
    assert errors == []
    assert [r.id for r in rules] == sorted(r.id for r in rules)

    by_id = {r.id: r for r in rules}
    assert by_id['KEBAB-SPECIAL'].scope == SpecificItems(frozenset({'kebab-koobideh', 'kebab-joojeh'}))
    assert by_id['FAMILY-MAINS'].scope == AllInCategory()
    assert by_id['FAMILY-MAINS'].min_quantity == 4
    assert by_id['VIP25'].customer_restricted is True
    assert by_id['WELCOME10'].coupon_code == 'WELCOME10'
    assert by_id['SUMMER-DRINKS'].active is False
    assert by_id['DESSERT-WEEK'].names['it'] == 'Settimana dei dolci'
    assert by_id['DESSERT-WEEK'].end_date == datetime(2026, 12, 31, 23, 59, 59, 999999)

    data = json.loads(output.read_text(encoding='utf-8'))
    assert data['total_rules'] == len(rules)
    assert data['active_rules'] == sum(1 for r in rules if r.active)


def test_compiled_snapshot_loads_back(tmp_path):
    csv_path = write_csv(tmp_path / 'discounts.csv', [
        valid_row(),
        valid_row(discount_id='KEBAB', specific_item_ids='kebab', percent_off='12.5',
                  start_date='2026-01-01', end_date='2026-01-31', coupon_code='KEBAB'),
        valid_row(discount_id='NONE', specific_item_ids='-'),
    ])
    output = tmp_path / 'compiled.json'

    success, compiled, errors = compile_rules(csv_path, output, verbose=False)
    loaded = load_compiled_rules(output)

    assert success, errors
    assert loaded == compiled
    kebab = next(r for r in loaded if r.id == 'KEBAB')
    assert kebab.percent_off == Decimal('12.5')
    assert kebab.start_date == datetime(2026, 1, 1)
    none = next(r for r in loaded if r.id == 'NONE')
    assert none.scope == SpecificItems(frozenset())


@pytest.mark.parametrize("overrides, message", [
    ({'discount_id': ''}, "discount_id is required"),
    ({'category_id': ''}, "category_id is required"),
    ({'percent_off': '120'}, "percent_off must be between 0 and 100"),
    ({'percent_off': 'ten'}, "percent_off must be numeric"),
    ({'min_quantity': 'two'}, "min_quantity must be an integer"),
    ({'min_quantity': '-1'}, "min_quantity must not be negative"),
    ({'start_date': '03/01/2026'}, "start_date must be YYYY-MM-DD format"),
    ({'start_date': '2026-04-01', 'end_date': '2026-03-01'}, "start_date must be before end_date"),
])
def test_invalid_rows_rejected(tmp_path, overrides, message):
    csv_path = write_csv(tmp_path / 'discounts.csv', [valid_row(**overrides)])
    output = tmp_path / 'compiled.json'

    success, rules, errors = compile_rules(csv_path, output, verbose=False)

    assert not success
    assert errors == [f"Line 2: {message}"]
    assert not output.exists()


def test_duplicate_ids_rejected(tmp_path):
    csv_path = write_csv(tmp_path / 'discounts.csv', [valid_row(), valid_row()])

    success, _, errors = compile_rules(csv_path, tmp_path / 'compiled.json', verbose=False)

    assert not success
    assert errors == ["Line 3: duplicate discount_id 'MAINS10'"]


def test_missing_file(tmp_path):
    success, rules, errors = compile_rules(tmp_path / 'nope.csv', tmp_path / 'out.json', verbose=False)

    assert not success
    assert rules == []
    assert "Rules file not found" in errors[0]


def test_missing_required_columns(tmp_path):
    path = tmp_path / 'discounts.csv'
    path.write_text("discount_id,name\nA,Alpha\n", encoding='utf-8')

    success, _, errors = compile_rules(path, tmp_path / 'out.json', verbose=False)

    assert not success
    assert errors == ["Missing required columns: category_id, percent_off"]


def test_offset_dates_stored_as_naive_local(tmp_path):
    csv_path = write_csv(tmp_path / 'discounts.csv', [
        valid_row(start_date='2026-01-01T00:00:00+00:00', end_date='2026-03-31'),
    ])
    output = tmp_path / 'compiled.json'

    success, compiled, errors = compile_rules(csv_path, output, verbose=False)
    loaded = load_compiled_rules(output)

    expected = datetime(2026, 1, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert success, errors
    assert compiled[0].start_date == expected
    assert loaded[0].start_date == expected
    assert loaded[0].start_date.tzinfo is None


def test_hand_edited_snapshot(tmp_path):
    path = tmp_path / 'compiled.json'
    path.write_text(json.dumps({"rules": [{
        "id": "EDITED",
        "category_id": "mains",
        "percent_off": "10",
        "active": "false",
        "customer_restricted": "yes",
        "start_date": "2026-01-01T00:00:00+00:00",
    }]}), encoding='utf-8')

    rule, = load_compiled_rules(path)

    assert rule.active is False
    assert rule.customer_restricted is True
    assert rule.start_date.tzinfo is None
    assert rule.scope == AllInCategory()
