from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomledger.core.config import settings
from roomledger.routers import bookings, coupons, pricing, refunds, webhooks

OPENAPI_TAGS = [
    {"name": "Coupons", "description": "Validate coupons and manage the coupon store."},
    {"name": "Bookings", "description": "Cancel bookings and hand back coupons and credits."},
    {"name": "Refunds", "description": "Inspect refunds and the manual review queue."},
    {"name": "Pricing", "description": "Quote prices with coupons, credits and overrides."},
    {"name": "Webhooks", "description": "Payment gateway notifications."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Coupon, credit and refund reconciliation ledger for room bookings. "
        "Prices bookings, tracks coupon and credit consumption, and reconciles "
        "gateway refunds against each booking's price audit snapshot."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

app.include_router(coupons.router, prefix="/v1/coupons", tags=["Coupons"])
app.include_router(bookings.router, prefix="/v1/bookings", tags=["Bookings"])
app.include_router(refunds.router, prefix="/v1/refunds", tags=["Refunds"])
app.include_router(pricing.router, prefix="/v1/pricing", tags=["Pricing"])
app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["Webhooks"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "environment": settings.ENVIRONMENT,
        "status": "running",
    }
