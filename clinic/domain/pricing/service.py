"""Pricing service - Category/treatment/promo management and price quotes"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Promo, Treatment, TreatmentCategory
from ...utils.clock import utcnow
from ..exceptions import (
    CategoryExists,
    CategoryNotFound,
    InvalidDiscount,
    InvalidPromoWindow,
    PromoNotFound,
    TreatmentNotFound,
)
from .repository import CategoryRepository, PromoRepository, TreatmentRepository
from .resolver import PERCENTAGE, PromoResolver
from .schemas import (
    CategoryCreate,
    CategoryUpdate,
    EffectivePrice,
    PromoCreate,
    PromoResponse,
    PromoUpdate,
    TreatmentCreate,
    TreatmentUpdate,
    TreatmentWithPriceResponse,
)

logger = logging.getLogger(__name__)


class PricingService:
    """Service layer for treatment prices and promo administration"""

    def __init__(self, db: Session, resolver: Optional[PromoResolver] = None):
        self.db = db
        self.categories = CategoryRepository()
        self.treatments = TreatmentRepository()
        self.promos = PromoRepository()
        self.resolver = resolver or PromoResolver()

    # ------------------------------------------------------------------
    # Price resolution
    # ------------------------------------------------------------------

    def price_treatment(self, treatment: Treatment, now: Optional[datetime] = None) -> EffectivePrice:
        """Effective unit price of ``treatment`` at ``now``"""
        now = now or utcnow()
        candidates = self.promos.list_promos(
            self.db, active_only=True, for_treatment=treatment.id, now=now
        )
        return self.resolver.resolve_best_price(treatment, candidates, now)

    def quote(self, treatment_id: int, now: Optional[datetime] = None) -> EffectivePrice:
        """Effective unit price for a treatment looked up by id"""
        return self.price_treatment(self.get_treatment(treatment_id), now)

    def list_treatments_with_prices(
        self, category_id: Optional[int] = None, now: Optional[datetime] = None
    ) -> list[TreatmentWithPriceResponse]:
        """Active treatments with the price a customer would pay right now"""
        now = now or utcnow()
        treatments = self.treatments.get_treatments(self.db, active_only=True, category_id=category_id)
        # One promo query for the whole listing; the resolver narrows per treatment
        live_promos = self.promos.list_promos(self.db, active_only=True, now=now)

        results = []
        for treatment in treatments:
            price = self.resolver.resolve_best_price(treatment, live_promos, now)
            results.append(
                TreatmentWithPriceResponse(
                    id=treatment.id,
                    name=treatment.name,
                    description=treatment.description,
                    duration_minutes=treatment.duration_minutes,
                    base_price=treatment.base_price,
                    category_id=treatment.category_id,
                    requires_confirmation=treatment.requires_confirmation,
                    is_active=treatment.is_active,
                    final_price=price.final_price,
                    applied_promo=price.applied_promo,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Treatments
    # ------------------------------------------------------------------

    def get_treatment(self, treatment_id: int) -> Treatment:
        treatment = self.treatments.get_treatment_by_id(self.db, treatment_id)
        if not treatment:
            raise TreatmentNotFound(f"Treatment {treatment_id} not found")
        return treatment

    def list_treatments(
        self, active_only: bool = True, category_id: Optional[int] = None
    ) -> list[Treatment]:
        return self.treatments.get_treatments(self.db, active_only, category_id)

    def create_treatment(self, data: TreatmentCreate) -> Treatment:
        if data.category_id is not None:
            self.get_category(data.category_id)
        treatment = self.treatments.create_treatment(self.db, **data.model_dump())
        logger.info(f"✅ Created treatment {treatment.id} ({treatment.name})")
        return treatment

    def update_treatment(self, treatment_id: int, data: TreatmentUpdate) -> Treatment:
        treatment = self.get_treatment(treatment_id)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("category_id") is not None:
            self.get_category(updates["category_id"])
        return self.treatments.update_treatment(self.db, treatment, **updates)

    def delete_treatment(self, treatment_id: int) -> dict:
        """Delete a treatment, or only deactivate it when bookings still reference it"""
        treatment = self.get_treatment(treatment_id)
        if self.treatments.is_treatment_booked(self.db, treatment.id):
            self.treatments.update_treatment(self.db, treatment, is_active=False)
            logger.info(f"🚫 Treatment {treatment_id} is on existing bookings, deactivated instead")
            return {"message": "Treatment deactivated", "deleted": False}

        self.treatments.delete_treatment(self.db, treatment)
        logger.info(f"🗑️ Deleted treatment {treatment_id}")
        return {"message": "Treatment deleted", "deleted": True}

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def get_category(self, category_id: int) -> TreatmentCategory:
        category = self.categories.get_category_by_id(self.db, category_id)
        if not category:
            raise CategoryNotFound(f"Treatment category {category_id} not found")
        return category

    def list_categories(self, active_only: bool = False) -> list[TreatmentCategory]:
        return self.categories.get_categories(self.db, active_only)

    def create_category(self, data: CategoryCreate) -> TreatmentCategory:
        if self.categories.get_category_by_name(self.db, data.name):
            raise CategoryExists(f"Category {data.name!r} already exists")
        category = self.categories.create_category(self.db, **data.model_dump())
        logger.info(f"✅ Created treatment category {category.id} ({category.name})")
        return category

    def update_category(self, category_id: int, data: CategoryUpdate) -> TreatmentCategory:
        category = self.get_category(category_id)
        updates = data.model_dump(exclude_unset=True)
        if "name" in updates and updates["name"] != category.name:
            if self.categories.get_category_by_name(self.db, updates["name"]):
                raise CategoryExists(f"Category {updates['name']!r} already exists")
        return self.categories.update_category(self.db, category, **updates)

    def delete_category(self, category_id: int) -> dict:
        category = self.get_category(category_id)
        detached = self.categories.delete_category(self.db, category)
        logger.info(f"🗑️ Deleted treatment category {category_id}, {detached} treatment(s) uncategorized")
        return {"message": "Category deleted", "uncategorized_treatments": detached}

    # ------------------------------------------------------------------
    # Promos
    # ------------------------------------------------------------------

    def _resolve_targets(self, treatment_ids: list[int]) -> list[Treatment]:
        wanted = set(treatment_ids)
        found = self.treatments.get_treatments_by_ids(self.db, list(wanted))
        missing = wanted - {t.id for t in found}
        if missing:
            raise TreatmentNotFound(f"Treatments not found: {sorted(missing)}")
        return found

    def get_promo(self, promo_id: int) -> Promo:
        promo = self.promos.get_promo_by_id(self.db, promo_id)
        if not promo:
            raise PromoNotFound(f"Promo {promo_id} not found")
        return promo

    def list_promos(
        self, active_only: bool = False, for_treatment: Optional[int] = None
    ) -> list[Promo]:
        return self.promos.list_promos(self.db, active_only=active_only, for_treatment=for_treatment)

    def create_promo(self, data: PromoCreate) -> Promo:
        targets = [] if data.is_global else self._resolve_targets(data.applicable_treatments)
        promo = self.promos.create_promo(
            self.db, targets, **data.model_dump(exclude={"applicable_treatments"})
        )
        logger.info(
            f"✅ Created promo {promo.id} ({promo.name}): {promo.discount_type} "
            f"{promo.discount_value}, global={promo.is_global}, targets={len(targets)}"
        )
        return promo

    def update_promo(self, promo_id: int, data: PromoUpdate) -> Promo:
        promo = self.get_promo(promo_id)
        updates = data.model_dump(exclude_unset=True, exclude={"applicable_treatments"})

        # A partial PATCH is checked against the promo it produces, not just the fields sent
        discount_type = updates.get("discount_type", promo.discount_type)
        discount_value = updates.get("discount_value", promo.discount_value)
        if discount_type == PERCENTAGE and discount_value > 100:
            raise InvalidDiscount(
                f"Percentage promo {promo_id} cannot discount more than 100 (got {discount_value})"
            )
        start_date = updates.get("start_date", promo.start_date)
        end_date = updates.get("end_date", promo.end_date)
        if start_date and end_date and start_date > end_date:
            raise InvalidPromoWindow(
                f"Promo {promo_id} would start at {start_date} after it ends at {end_date}"
            )

        targets = None
        if data.applicable_treatments is not None:
            targets = self._resolve_targets(data.applicable_treatments)

        return self.promos.update_promo(self.db, promo, targets, **updates)

    def delete_promo(self, promo_id: int) -> dict:
        promo = self.get_promo(promo_id)
        self.promos.delete_promo(self.db, promo)
        logger.info(f"🗑️ Deleted promo {promo_id}")
        return {"message": "Promo deleted"}

    @staticmethod
    def promo_to_response(promo: Promo) -> PromoResponse:
        return PromoResponse(
            id=promo.id,
            name=promo.name,
            description=promo.description,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            start_date=promo.start_date,
            end_date=promo.end_date,
            is_active=promo.is_active,
            is_global=promo.is_global,
            applicable_treatments=sorted(promo.applicable_treatment_ids),
            created_at=promo.created_at,
        )
