"""Pricing domain schemas - Pydantic models for validation"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, field_validator, model_validator

DiscountType = Literal["percentage", "fixed"]


def _to_naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class PromoSnapshot(BaseModel):
    """Copy of a promo taken at evaluation time; later promo edits never touch it"""

    promo_id: Optional[int] = None
    name: str
    discount_type: DiscountType
    discount_value: float
    is_global: bool = False


class EffectivePrice(BaseModel):
    """Unit price of one treatment after the best applicable promo"""

    treatment_id: Optional[int] = None
    base_price: int
    final_price: int
    applied_promo: Optional[PromoSnapshot] = None

    @property
    def discount_amount(self) -> int:
        return self.base_price - self.final_price


def _reject_nulls(model: BaseModel, fields: tuple[str, ...]) -> None:
    # Omitted fields stay untouched on PATCH; an explicit null is only valid on nullable columns
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


# ============================================================================
# CATEGORIES
# ============================================================================


class CategoryCreate(BaseModel):
    """Schema for creating a treatment category"""

    name: str
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class CategoryUpdate(BaseModel):
    """Schema for updating a treatment category"""

    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("name must not be blank")
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def validate_nulls(self):
        _reject_nulls(self, ("name", "is_active"))
        return self


class CategoryResponse(BaseModel):
    """Schema for treatment category response"""

    id: int
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


# ============================================================================
# TREATMENTS
# ============================================================================


class TreatmentCreate(BaseModel):
    """Schema for creating a treatment"""

    name: str
    description: Optional[str] = None
    duration_minutes: int
    base_price: int
    category_id: Optional[int] = None
    requires_confirmation: bool = False
    is_active: bool = True

    @field_validator("base_price")
    @classmethod
    def validate_base_price(cls, v: int) -> int:
        if v < 0:
            raise ValueError("base_price must not be negative")
        return v

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("duration_minutes must be greater than 0")
        return v


class TreatmentUpdate(BaseModel):
    """Schema for updating a treatment"""

    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    base_price: Optional[int] = None
    category_id: Optional[int] = None
    requires_confirmation: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("base_price")
    @classmethod
    def validate_base_price(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("base_price must not be negative")
        return v

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("duration_minutes must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_nulls(self):
        _reject_nulls(
            self, ("name", "duration_minutes", "base_price", "requires_confirmation", "is_active")
        )
        return self


class TreatmentResponse(BaseModel):
    """Schema for treatment response"""

    id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    base_price: int
    category_id: Optional[int] = None
    requires_confirmation: bool
    is_active: bool

    class Config:
        from_attributes = True


class TreatmentWithPriceResponse(TreatmentResponse):
    """Treatment plus the price a customer would be charged right now"""

    final_price: int
    applied_promo: Optional[PromoSnapshot] = None


# ============================================================================
# PROMOS
# ============================================================================


class PromoCreate(BaseModel):
    """Schema for creating a promo"""

    name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    is_global: bool = False
    applicable_treatments: list[int] = []

    @field_validator("discount_value")
    @classmethod
    def validate_discount_value(cls, v: float) -> float:
        if v < 0:
            raise ValueError("discount_value must not be negative")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(v)

    @model_validator(mode="after")
    def validate_window(self):
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount_value must be between 0 and 100")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class PromoUpdate(BaseModel):
    """Schema for updating a promo"""

    name: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_global: Optional[bool] = None
    applicable_treatments: Optional[list[int]] = None

    @field_validator("discount_value")
    @classmethod
    def validate_discount_value(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("discount_value must not be negative")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(v)

    @model_validator(mode="after")
    def validate_window(self):
        # Checks what this request carries; the service re-checks against the stored promo
        _reject_nulls(self, ("name", "discount_type", "discount_value", "is_active", "is_global"))
        if self.discount_type == "percentage" and (self.discount_value or 0) > 100:
            raise ValueError("percentage discount_value must be between 0 and 100")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class PromoResponse(BaseModel):
    """Schema for promo response"""

    id: int
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool
    is_global: bool
    applicable_treatments: list[int] = []
    created_at: Optional[datetime] = None
