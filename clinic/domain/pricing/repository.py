"""Pricing repository - Database operations for categories, treatments and promos"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models import BookingTreatment, Promo, Treatment, TreatmentCategory, promo_treatments
from ...utils.clock import utcnow


class CategoryRepository:
    """Repository for treatment category database operations"""

    @staticmethod
    def get_categories(db: Session, active_only: bool = False) -> list[TreatmentCategory]:
        """Get categories ordered by name"""
        query = db.query(TreatmentCategory)
        if active_only:
            query = query.filter(TreatmentCategory.is_active.is_(True))
        return query.order_by(TreatmentCategory.name.asc()).all()

    @staticmethod
    def get_category_by_id(db: Session, category_id: int) -> Optional[TreatmentCategory]:
        return db.query(TreatmentCategory).filter(TreatmentCategory.id == category_id).first()

    @staticmethod
    def get_category_by_name(db: Session, name: str) -> Optional[TreatmentCategory]:
        return db.query(TreatmentCategory).filter(TreatmentCategory.name == name).first()

    @staticmethod
    def create_category(db: Session, **category_data) -> TreatmentCategory:
        """Create a new category"""
        category = TreatmentCategory(**category_data)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    @staticmethod
    def update_category(db: Session, category: TreatmentCategory, **updates) -> TreatmentCategory:
        """Update a category with the supplied fields"""
        for key, value in updates.items():
            if hasattr(category, key):
                setattr(category, key, value)

        db.commit()
        db.refresh(category)
        return category

    @staticmethod
    def delete_category(db: Session, category: TreatmentCategory) -> int:
        """Delete a category; its treatments become uncategorized. Returns how many were detached."""
        detached = (
            db.query(Treatment)
            .filter(Treatment.category_id == category.id)
            .update({Treatment.category_id: None}, synchronize_session="fetch")
        )
        db.delete(category)
        db.commit()
        return detached


class TreatmentRepository:
    """Repository for treatment database operations"""

    @staticmethod
    def get_treatments(
        db: Session, active_only: bool = True, category_id: Optional[int] = None
    ) -> list[Treatment]:
        """Get treatments ordered by price"""
        query = db.query(Treatment)

        if active_only:
            query = query.filter(Treatment.is_active.is_(True))

        if category_id is not None:
            query = query.filter(Treatment.category_id == category_id)

        return query.order_by(Treatment.base_price.asc(), Treatment.id.asc()).all()

    @staticmethod
    def get_treatment_by_id(db: Session, treatment_id: int) -> Optional[Treatment]:
        """Get a specific treatment by ID"""
        return db.query(Treatment).filter(Treatment.id == treatment_id).first()

    @staticmethod
    def get_treatments_by_ids(db: Session, treatment_ids: list[int]) -> list[Treatment]:
        """Get several treatments at once"""
        if not treatment_ids:
            return []
        return db.query(Treatment).filter(Treatment.id.in_(treatment_ids)).all()

    @staticmethod
    def create_treatment(db: Session, **treatment_data) -> Treatment:
        """Create a new treatment"""
        treatment = Treatment(**treatment_data)
        db.add(treatment)
        db.commit()
        db.refresh(treatment)
        return treatment

    @staticmethod
    def update_treatment(db: Session, treatment: Treatment, **updates) -> Treatment:
        """Update a treatment with the supplied fields; an explicit None clears the column"""
        for key, value in updates.items():
            if hasattr(treatment, key):
                setattr(treatment, key, value)

        db.commit()
        db.refresh(treatment)
        return treatment

    @staticmethod
    def is_treatment_booked(db: Session, treatment_id: int) -> bool:
        """True when any booking line references the treatment"""
        return (
            db.query(BookingTreatment.id)
            .filter(BookingTreatment.treatment_id == treatment_id)
            .first()
            is not None
        )

    @staticmethod
    def delete_treatment(db: Session, treatment: Treatment) -> None:
        """Delete a treatment and its promo links"""
        db.delete(treatment)
        db.commit()


class PromoRepository:
    """Repository for promo database operations"""

    @staticmethod
    def list_promos(
        db: Session,
        active_only: bool = False,
        for_treatment: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Promo]:
        """List promos, optionally only those live at ``now`` and/or applicable to a treatment"""
        query = db.query(Promo).options(selectinload(Promo.treatments))

        if active_only:
            now = now or utcnow()
            query = query.filter(
                Promo.is_active.is_(True),
                or_(Promo.start_date.is_(None), Promo.start_date <= now),
                or_(Promo.end_date.is_(None), Promo.end_date >= now),
            )

        if for_treatment is not None:
            listed = (
                db.query(promo_treatments.c.promo_id)
                .filter(promo_treatments.c.treatment_id == for_treatment)
                .scalar_subquery()
            )
            query = query.filter(or_(Promo.is_global.is_(True), Promo.id.in_(listed)))

        return query.order_by(Promo.id.asc()).all()

    @staticmethod
    def get_promo_by_id(db: Session, promo_id: int) -> Optional[Promo]:
        """Get a specific promo by ID"""
        return (
            db.query(Promo)
            .options(selectinload(Promo.treatments))
            .filter(Promo.id == promo_id)
            .first()
        )

    @staticmethod
    def create_promo(db: Session, treatments: list[Treatment], **promo_data) -> Promo:
        """Create a new promo linked to the given treatments"""
        promo = Promo(**promo_data)
        promo.treatments = treatments
        db.add(promo)
        db.commit()
        db.refresh(promo)
        return promo

    @staticmethod
    def update_promo(
        db: Session, promo: Promo, treatments: Optional[list[Treatment]] = None, **updates
    ) -> Promo:
        """Update a promo with the supplied fields; ``treatments`` replaces the targeted set"""
        for key, value in updates.items():
            if hasattr(promo, key):
                setattr(promo, key, value)

        if treatments is not None:
            promo.treatments = treatments

        db.commit()
        db.refresh(promo)
        return promo

    @staticmethod
    def delete_promo(db: Session, promo: Promo) -> None:
        """Delete a promo; booking lines keep their own snapshot"""
        db.delete(promo)
        db.commit()
