from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from override_pricing import __version__
from override_pricing.api.overrides_api import router as overrides_router, pricing_router
from override_pricing.api.state import get_service
from override_pricing.services.pricing_service import PricingService
from override_pricing.config.settings import get_settings
from override_pricing.utils.logging import configure_logging

settings = get_settings()
configure_logging(level=settings.log_level, json_logs=settings.json_logs)

app = FastAPI(
    title="Override Pricing API",
    description="Client-specific price overrides: administration and resolution",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(overrides_router)
app.include_router(pricing_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Override Pricing API Active"}


@app.get("/system/status")
async def get_status(service: PricingService = Depends(get_service)):
    stats = service.admin.stats()
    return {
        "engine_active": True,
        "overrides_total": stats["total"],
        "overrides_active": stats["active"],
        "database": str(settings.db_path),
    }
