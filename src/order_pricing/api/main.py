from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..engine import InvalidInput, LineItem, PricingRequest
from ..engine.models import naive_local
from .discounts_api import DiscountRuleIn, router as discounts_router
from . import state

app = FastAPI(
    title="Order Pricing API",
    description="Discount and total evaluation for restaurant checkout",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include discount browsing API
app.include_router(discounts_router)


class LineItemIn(BaseModel):
    item_id: str
    unit_price: Decimal
    quantity: int
    category_id: str
    name: str = ""


class PriceRequest(BaseModel):
    line_items: list[LineItemIn]
    # None means "use the loaded discount snapshot"
    discounts: Optional[list[DiscountRuleIn]] = None
    coupon_code: Optional[str] = None
    coupon_authorized: bool = False
    now: Optional[datetime] = None


class TraceStepOut(BaseModel):
    step: str
    description: str
    value: Optional[str] = None


class PriceResponse(BaseModel):
    subtotal: Decimal
    applied_discounts: dict[str, Decimal]
    total: Decimal
    currency: str
    applied_rules: dict[str, str]
    coupon_status: str
    warnings: list[str]
    trace: list[TraceStepOut]


@app.get("/")
async def root():
    return {"status": "online", "message": "Order Pricing API Active"}


@app.post("/pricing", response_model=PriceResponse)
async def compute_pricing(req: PriceRequest):
    if req.discounts is None:
        discounts = state.catalog.snapshot()
    else:
        discounts = [d.to_rule() for d in req.discounts]

    request = PricingRequest(
        line_items=[LineItem(**item.model_dump()) for item in req.line_items],
        candidate_discounts=discounts,
        supplied_coupon_code=req.coupon_code,
        coupon_authorized=req.coupon_authorized,
        now=naive_local(req.now) or datetime.now(),
    )

    try:
        result = state.engine.compute_pricing(request)
    except InvalidInput as e:
        raise HTTPException(status_code=422, detail=str(e))

    return PriceResponse(
        subtotal=result.subtotal,
        applied_discounts=dict(result.applied_discounts),
        total=result.total,
        currency=state.settings.currency_code,
        applied_rules=dict(result.applied_rules),
        coupon_status=result.coupon_status,
        warnings=list(result.warnings),
        trace=[TraceStepOut(step=t.step, description=t.description, value=t.value) for t in result.trace],
    )


@app.get("/system/status")
async def get_status():
    return {
        "engine_active": True,
        "rules_loaded": state.catalog.loaded,
        "rules_count": len(state.catalog.snapshot()),
        "rules_loaded_at": state.catalog.loaded_at.isoformat() if state.catalog.loaded_at else None,
        "currency": state.settings.currency_code,
        "minor_units": state.engine.minor_units,
    }
