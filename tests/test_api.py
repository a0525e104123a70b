"""
API tests - pricing and discount endpoints through FastAPI's TestClient.
"""
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from order_pricing.api import state
from order_pricing.api.main import app
from order_pricing.engine.models import DiscountRule, SpecificItems
from order_pricing.services.discount_service import DiscountCatalog, DiscountService

RULES = [
    DiscountRule(id="FAMILY-MAINS", category_id="mains", percent_off=Decimal("15"), min_quantity=4,
                 name="Family mains", names={"it": "Secondi per famiglie"}),
    DiscountRule(id="KEBAB", category_id="mains", percent_off=Decimal("20"),
                 scope=SpecificItems(frozenset({"kebab"}))),
    DiscountRule(id="WELCOME10", category_id="drinks", percent_off=Decimal("10"), coupon_code="WELCOME10"),
    DiscountRule(id="SUMMER", category_id="drinks", percent_off=Decimal("5"), active=False),
]

CART = [
    {"item_id": "kebab", "unit_price": "15.00", "quantity": 2, "category_id": "mains"},
    {"item_id": "cola", "unit_price": "3.00", "quantity": 2, "category_id": "drinks"},
]


@pytest.fixture
def client(monkeypatch):
    catalog = DiscountCatalog(rules=RULES)
    monkeypatch.setattr(state, "catalog", catalog)
    monkeypatch.setattr(state, "discount_service", DiscountService(catalog))
    return TestClient(app)


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_pricing_with_snapshot(client):
    response = client.post("/pricing", json={"line_items": CART, "now": "2026-03-15T12:00:00"})

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["subtotal"]) == Decimal("36.00")
    assert {k: Decimal(v) for k, v in body["applied_discounts"].items()} == {"mains": Decimal("6.00")}
    assert Decimal(body["total"]) == Decimal("30.00")
    assert body["applied_rules"] == {"mains": "KEBAB"}
    assert body["coupon_status"] == "none"
    assert body["trace"][0]["step"] == "Subtotal"


def test_pricing_with_coupon(client):
    response = client.post("/pricing", json={"line_items": CART, "coupon_code": "WELCOME10"})

    body = response.json()
    assert body["coupon_status"] == "applied"
    assert Decimal(body["applied_discounts"]["drinks"]) == Decimal("0.60")
    assert Decimal(body["total"]) == Decimal("29.40")


def test_pricing_unknown_coupon_is_a_warning(client):
    response = client.post("/pricing", json={"line_items": CART, "coupon_code": "BOGUS"})

    assert response.status_code == 200
    body = response.json()
    assert body["coupon_status"] == "not_found"
    assert body["warnings"] == ["Coupon code 'BOGUS' not recognized"]


def test_pricing_with_inline_discounts(client):
    payload = {
        "line_items": CART,
        "discounts": [{"id": "HALF-DRINKS", "category_id": "drinks", "percent_off": "50"}],
        "now": "2026-03-15T12:00:00",
    }
    response = client.post("/pricing", json=payload)

    body = response.json()
    assert body["applied_rules"] == {"drinks": "HALF-DRINKS"}
    assert Decimal(body["total"]) == Decimal("33.00")


def test_pricing_inline_empty_item_list(client):
    payload = {
        "line_items": CART,
        "discounts": [{"id": "NONE", "category_id": "mains", "percent_off": "50", "specific_item_ids": []}],
    }
    response = client.post("/pricing", json=payload)

    assert response.json()["applied_discounts"] == {}


def test_pricing_rejects_negative_price(client):
    cart = [{"item_id": "kebab", "unit_price": "-1", "quantity": 1, "category_id": "mains"}]
    response = client.post("/pricing", json={"line_items": cart})

    assert response.status_code == 422
    assert "must not be negative" in response.json()["detail"]


def test_pricing_rejects_bad_percent(client):
    payload = {
        "line_items": CART,
        "discounts": [{"id": "BAD", "category_id": "mains", "percent_off": "140"}],
    }
    response = client.post("/pricing", json=payload)

    assert response.status_code == 422
    assert "between 0 and 100" in response.json()["detail"]


def test_list_discounts(client):
    response = client.get("/api/discounts", params={"locale": "it"})

    assert response.status_code == 200
    body = response.json()
    assert [d["id"] for d in body] == [r.id for r in RULES]
    family = body[0]
    assert family["display_name"] == "Secondi per famiglie"
    assert family["specific_item_ids"] is None
    assert body[1]["specific_item_ids"] == ["kebab"]

    active = client.get("/api/discounts", params={"include_inactive": False}).json()
    assert "SUMMER" not in [d["id"] for d in active]


def test_get_discount(client):
    response = client.get("/api/discounts/KEBAB")

    assert response.status_code == 200
    assert Decimal(response.json()["percent_off"]) == Decimal("20")


def test_get_discount_not_found(client):
    response = client.get("/api/discounts/NOPE")

    assert response.status_code == 404


def test_stats(client):
    response = client.get("/api/discounts/stats")

    assert response.status_code == 200
    assert response.json()["total"] == len(RULES)


def test_validate_discount(client):
    payload = {"id": "STEW", "category_id": "mains", "percent_off": "10", "specific_item_ids": ["stew"]}
    response = client.post("/api/discounts/validate", json=payload)

    body = response.json()
    assert body["valid"] is True
    assert any("FAMILY-MAINS" in w for w in body["warnings"])

    bad = client.post("/api/discounts/validate", json={"id": "X", "category_id": "mains", "percent_off": "101"})
    assert bad.json()["valid"] is False


def test_check_coupon(client):
    ok = client.post("/api/discounts/coupon", json={"code": "WELCOME10"}).json()
    missing = client.post("/api/discounts/coupon", json={"code": "welcome10"}).json()

    assert ok["valid"] is True
    assert ok["discount"]["id"] == "WELCOME10"
    assert missing["valid"] is False
    assert missing["message"] == "Invalid or expired coupon code"


def test_check_blank_coupon(client):
    response = client.post("/api/discounts/coupon", json={"code": " "})

    assert response.status_code == 400


def test_reload_without_snapshot(client, monkeypatch, tmp_path):
    monkeypatch.setattr(state.catalog, "path", tmp_path / "missing.json")
    response = client.post("/api/discounts/reload")

    assert response.json() == {"success": False, "rules_count": 0}


def test_system_status(client):
    body = client.get("/system/status").json()

    assert body["rules_loaded"] is True
    assert body["rules_count"] == len(RULES)
    assert body["minor_units"] == 2


def test_aware_now_is_accepted(client):
    now = datetime(2026, 3, 15, 12, 0).astimezone().isoformat()
    response = client.post("/pricing", json={"line_items": CART, "now": now})

    assert response.status_code == 200


def test_snapshot_rule_with_utc_offset(monkeypatch):
    offset_rule = DiscountRule(id="TZ", category_id="mains", percent_off=Decimal("10"),
                               start_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
    catalog = DiscountCatalog(rules=[offset_rule])
    monkeypatch.setattr(state, "catalog", catalog)
    monkeypatch.setattr(state, "discount_service", DiscountService(catalog))
    client = TestClient(app)

    response = client.post("/pricing", json={"line_items": CART[:1], "now": "2026-03-15T12:00:00"})

    assert response.status_code == 200
    assert response.json()["applied_rules"] == {"mains": "TZ"}


MENU = [
    {"item_id": "kebab", "category_id": "mains", "unit_price": "15.00"},
    {"item_id": "stew", "category_id": "mains", "unit_price": "10.00"},
    {"item_id": "cola", "category_id": "drinks", "unit_price": "3.00"},
]


def test_menu_offers(client):
    response = client.post("/api/discounts/offers", json={"items": MENU, "now": "2026-03-15T12:00:00"})

    assert response.status_code == 200
    body = response.json()
    assert [o["item_id"] for o in body] == ["kebab", "stew"]
    assert Decimal(body[0]["discounted_price"]) == Decimal("12.00")
    assert body[0]["potential"] is False
    assert body[1]["potential"] is True
    assert body[1]["message"] == "Add 4 more to cart for 15% off"


def test_menu_offers_with_cart_and_locale(client):
    payload = {"items": MENU[1:2], "cart_quantities": {"mains": 4}, "locale": "it"}
    body = client.post("/api/discounts/offers", json=payload).json()

    assert body[0]["rule_id"] == "FAMILY-MAINS"
    assert body[0]["potential"] is False
    assert body[0]["message"] == "Secondi per famiglie"
    assert Decimal(body[0]["discounted_price"]) == Decimal("8.50")


def test_menu_offers_reject_negative_price(client):
    items = [{"item_id": "x", "category_id": "mains", "unit_price": "-1"}]
    response = client.post("/api/discounts/offers", json={"items": items})

    assert response.status_code == 422
    assert "must not be negative" in response.json()["detail"]
