"""
Shared service instance for the API routers.

Built lazily from settings; tests swap it with set_service().
"""
from typing import Optional

from ..services.pricing_service import PricingService

_service: Optional[PricingService] = None


def get_service() -> PricingService:
    """FastAPI dependency returning the process-wide pricing service."""
    global _service
    if _service is None:
        _service = PricingService.from_settings()
    return _service


def set_service(service: Optional[PricingService]):
    global _service
    _service = service
