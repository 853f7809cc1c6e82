"""Pricing router - FastAPI endpoints for categories, treatments, promos and price quotes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    EffectivePrice,
    PromoCreate,
    PromoResponse,
    PromoUpdate,
    TreatmentCreate,
    TreatmentResponse,
    TreatmentUpdate,
    TreatmentWithPriceResponse,
)
from .service import PricingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pricing"])


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    """Dependency injection for PricingService"""
    return PricingService(db)


# ============================================================================
# CATEGORIES
# ============================================================================


@router.get("/treatment-categories", response_model=list[CategoryResponse])
async def list_categories(
    include_inactive: bool = Query(False),
    service: PricingService = Depends(get_pricing_service),
):
    """Treatment categories ordered by name"""
    return service.list_categories(active_only=not include_inactive)


@router.post("/admin/treatment-categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    service: PricingService = Depends(get_pricing_service),
):
    return service.create_category(data)


@router.patch("/admin/treatment-categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    service: PricingService = Depends(get_pricing_service),
):
    return service.update_category(category_id, data)


@router.delete("/admin/treatment-categories/{category_id}")
async def delete_category(
    category_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    """Delete a category; its treatments stay, without a category"""
    return service.delete_category(category_id)


# ============================================================================
# TREATMENTS
# ============================================================================


@router.get("/treatments", response_model=list[TreatmentResponse])
async def list_treatments(
    category_id: Optional[int] = Query(None),
    include_inactive: bool = Query(False),
    service: PricingService = Depends(get_pricing_service),
):
    """List treatments ordered by base price"""
    return service.list_treatments(active_only=not include_inactive, category_id=category_id)


@router.get("/treatments/with-promos", response_model=list[TreatmentWithPriceResponse])
async def list_treatments_with_promos(
    category_id: Optional[int] = Query(None),
    service: PricingService = Depends(get_pricing_service),
):
    """Active treatments with their current best promo price"""
    return service.list_treatments_with_prices(category_id=category_id)


@router.get("/treatments/{treatment_id}", response_model=TreatmentResponse)
async def get_treatment(
    treatment_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    return service.get_treatment(treatment_id)


@router.get("/treatments/{treatment_id}/price", response_model=EffectivePrice)
async def quote_treatment(
    treatment_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    """Price a customer would be charged for one unit right now"""
    return service.quote(treatment_id)


@router.get("/treatments/{treatment_id}/promos", response_model=list[PromoResponse])
async def list_treatment_promos(
    treatment_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    """Live promos that apply to a treatment"""
    service.get_treatment(treatment_id)
    promos = service.list_promos(active_only=True, for_treatment=treatment_id)
    return [service.promo_to_response(p) for p in promos]


@router.post("/admin/treatments", response_model=TreatmentResponse, status_code=201)
async def create_treatment(
    data: TreatmentCreate,
    service: PricingService = Depends(get_pricing_service),
):
    return service.create_treatment(data)


@router.patch("/admin/treatments/{treatment_id}", response_model=TreatmentResponse)
async def update_treatment(
    treatment_id: int,
    data: TreatmentUpdate,
    service: PricingService = Depends(get_pricing_service),
):
    """Edit a treatment; existing booking lines keep the price they were charged"""
    return service.update_treatment(treatment_id, data)


@router.delete("/admin/treatments/{treatment_id}")
async def delete_treatment(
    treatment_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    """Delete a treatment; one that is already on bookings is deactivated instead"""
    return service.delete_treatment(treatment_id)


# ============================================================================
# PROMOS
# ============================================================================


@router.get("/admin/promos", response_model=list[PromoResponse])
async def list_promos(
    active_only: bool = Query(False),
    service: PricingService = Depends(get_pricing_service),
):
    return [service.promo_to_response(p) for p in service.list_promos(active_only=active_only)]


@router.post("/admin/promos", response_model=PromoResponse, status_code=201)
async def create_promo(
    data: PromoCreate,
    service: PricingService = Depends(get_pricing_service),
):
    return service.promo_to_response(service.create_promo(data))


@router.get("/admin/promos/{promo_id}", response_model=PromoResponse)
async def get_promo(
    promo_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    return service.promo_to_response(service.get_promo(promo_id))


@router.patch("/admin/promos/{promo_id}", response_model=PromoResponse)
async def update_promo(
    promo_id: int,
    data: PromoUpdate,
    service: PricingService = Depends(get_pricing_service),
):
    return service.promo_to_response(service.update_promo(promo_id, data))


@router.delete("/admin/promos/{promo_id}")
async def delete_promo(
    promo_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    return service.delete_promo(promo_id)


__all__ = ["router", "get_pricing_service"]
