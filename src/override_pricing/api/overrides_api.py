"""
Overrides API - FastAPI routers for override administration and price resolution.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from ..engine.models import OverrideRecord, QuoteLine
from ..errors import (
    AuditWriteError,
    ConflictError,
    InvalidQuantityError,
    NotFoundError,
    OperationCancelledError,
    PricingError,
    ValidationError,
)
from ..services.pricing_service import PricingService
from .state import get_service

router = APIRouter(prefix="/api/overrides", tags=["overrides"])
pricing_router = APIRouter(prefix="/api/pricing", tags=["pricing"])


def raise_http(error: PricingError):
    """Map a core error onto an HTTPException."""
    if isinstance(error, (ValidationError, InvalidQuantityError)):
        detail = {"errors": error.errors} if isinstance(error, ValidationError) else str(error)
        raise HTTPException(status_code=400, detail=detail)
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        raise HTTPException(status_code=409, detail={
            "message": str(error),
            "conflicting_id": error.conflicting_id,
        })
    if isinstance(error, AuditWriteError):
        raise HTTPException(status_code=503, detail=f"Audit log unavailable: {error}")
    if isinstance(error, OperationCancelledError):
        raise HTTPException(status_code=408, detail=str(error))
    raise HTTPException(status_code=500, detail=str(error))


# Pydantic models for API
class OverrideCreate(BaseModel):
    """Request model for creating an override."""
    id: Optional[str] = None
    client_id: str
    product_id: Optional[str] = None
    category_name: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    fixed_price: Optional[Decimal] = None
    minimum_quantity: int = 1
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    notes: Optional[str] = None


class OverrideUpdate(BaseModel):
    """Request model for updating an override."""
    client_id: Optional[str] = None
    product_id: Optional[str] = None
    category_name: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    fixed_price: Optional[Decimal] = None
    minimum_quantity: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class OverrideResponse(BaseModel):
    """Response model for an override."""
    id: str
    client_id: str
    product_id: Optional[str]
    category_name: Optional[str]
    discount_percent: Optional[str]
    fixed_price: Optional[str]
    minimum_quantity: int
    valid_from: Optional[str]
    valid_until: Optional[str]
    is_active: bool
    notes: Optional[str]
    created_by: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


class ResolveRequest(BaseModel):
    """Request model for resolving one line item."""
    client_id: str
    product_id: Optional[str] = None
    category_name: Optional[str] = None
    base_price: Decimal
    quantity: int
    as_of: Optional[datetime] = None


class QuoteLineRequest(BaseModel):
    product_id: str
    category_name: Optional[str] = None
    base_price: Decimal
    quantity: int


class QuoteRequest(BaseModel):
    """Request model for resolving a multi-line quote."""
    client_id: str
    lines: list[QuoteLineRequest]
    as_of: Optional[datetime] = None


def _response(record: OverrideRecord) -> OverrideResponse:
    return OverrideResponse(**record.to_dict())


def _build(data: OverrideCreate, actor_id: Optional[str]) -> OverrideRecord:
    try:
        return OverrideRecord.build(**data.model_dump(), created_by=actor_id)
    except PricingError as e:
        raise_http(e)


# Override endpoints

@router.get("", response_model=list[OverrideResponse])
async def list_overrides(
    client_id: Optional[str] = None,
    product_id: Optional[str] = None,
    category_name: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = 20,
    offset: int = 0,
    service: PricingService = Depends(get_service),
):
    """List overrides, newest first."""
    records = service.admin.list_overrides(
        client_id=client_id,
        product_id=product_id,
        category_name=category_name,
        is_active=is_active,
        limit=limit,
        offset=offset,
    )
    return [_response(r) for r in records]


@router.get("/stats")
async def get_stats(service: PricingService = Depends(get_service)):
    """Get override statistics."""
    return service.admin.stats()


@router.get("/expiring", response_model=list[OverrideResponse])
async def list_expiring(within_days: Optional[int] = None, service: PricingService = Depends(get_service)):
    """Active overrides that expire within `within_days` days (default from settings)."""
    return [_response(r) for r in service.admin.expiring(within_days=within_days)]


@router.get("/{override_id}", response_model=OverrideResponse)
async def get_override(override_id: str, service: PricingService = Depends(get_service)):
    """Get a single override by ID."""
    try:
        return _response(service.admin.get(override_id))
    except PricingError as e:
        raise_http(e)


@router.post("", response_model=OverrideResponse, status_code=201)
async def create_override(
    data: OverrideCreate,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Create a new override."""
    record = _build(data, x_actor_id)
    try:
        return _response(service.admin.create(record, actor_id=x_actor_id))
    except PricingError as e:
        raise_http(e)


@router.put("/{override_id}", response_model=OverrideResponse)
async def update_override(
    override_id: str,
    updates: OverrideUpdate,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Update an existing override."""
    # exclude_unset keeps explicit nulls (clearing a field) but skips omitted fields
    patch = updates.model_dump(exclude_unset=True)
    try:
        return _response(service.admin.update(override_id, patch, actor_id=x_actor_id))
    except PricingError as e:
        raise_http(e)


@router.post("/{override_id}/deactivate", response_model=OverrideResponse)
async def deactivate_override(
    override_id: str,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Disable an override without deleting it."""
    try:
        return _response(service.admin.deactivate(override_id, actor_id=x_actor_id))
    except PricingError as e:
        raise_http(e)


@router.delete("/{override_id}")
async def delete_override(
    override_id: str,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Delete an override."""
    try:
        service.admin.delete(override_id, actor_id=x_actor_id)
        return {"success": True, "message": f"Override '{override_id}' deleted"}
    except PricingError as e:
        raise_http(e)


@router.post("/validate", response_model=ValidationResponse)
async def validate_override(data: OverrideCreate, service: PricingService = Depends(get_service)):
    """Validate an override without saving."""
    result = service.admin.validate(_build(data, None))
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


# Pricing endpoints

@pricing_router.post("/resolve")
async def resolve_price(
    request: ResolveRequest,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Resolve the unit price for one line item, with the reasoning trace."""
    try:
        resolution = service.resolve(
            request.client_id,
            request.product_id,
            request.category_name,
            request.base_price,
            request.quantity,
            as_of=request.as_of,
            actor_id=x_actor_id,
        )
    except PricingError as e:
        raise_http(e)
    return resolution.to_dict()


@pricing_router.post("/quote")
async def resolve_quote(
    request: QuoteRequest,
    x_actor_id: Optional[str] = Header(default=None),
    service: PricingService = Depends(get_service),
):
    """Resolve every line of a quote at the same instant."""
    lines = [
        QuoteLine(
            product_id=line.product_id,
            category_name=line.category_name,
            base_price=line.base_price,
            quantity=line.quantity,
        )
        for line in request.lines
    ]
    try:
        result = service.resolve_quote(request.client_id, lines, as_of=request.as_of, actor_id=x_actor_id)
    except PricingError as e:
        raise_http(e)
    return result.to_dict()
