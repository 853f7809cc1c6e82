import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .utils.clock import utcnow


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


promo_treatments = Table(
    "promo_treatments",
    Base.metadata,
    Column("promo_id", Integer, ForeignKey("promos.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "treatment_id", Integer, ForeignKey("treatments.id", ondelete="CASCADE"), primary_key=True
    ),
)


class TreatmentCategory(Base):
    __tablename__ = "treatment_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    treatments = relationship("Treatment", back_populates="category")


class Treatment(Base):
    __tablename__ = "treatments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    base_price = Column(Integer, nullable=False)  # Pre-discount reference price
    category_id = Column(Integer, ForeignKey("treatment_categories.id"), nullable=True)
    requires_confirmation = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    category = relationship("TreatmentCategory", back_populates="treatments")
    promos = relationship("Promo", secondary=promo_treatments, back_populates="treatments")


class Promo(Base):
    __tablename__ = "promos"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # percentage, fixed
    discount_value = Column(Float, nullable=False)  # 0-100 for percentage, currency amount for fixed
    start_date = Column(DateTime, nullable=True)  # Open-ended when null
    end_date = Column(DateTime, nullable=True)  # Open-ended when null
    is_active = Column(Boolean, default=True, nullable=False)
    is_global = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    treatments = relationship("Treatment", secondary=promo_treatments, back_populates="promos")

    @property
    def applicable_treatment_ids(self) -> set[int]:
        return {t.id for t in self.treatments}


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    type = Column(String(20), nullable=False, default="treatment")  # treatment, consultation
    status = Column(
        String(20), nullable=False, default="pending"
    )  # pending, confirmed, completed, canceled
    payment_status = Column(String(20), nullable=False, default="unpaid")  # unpaid, paid
    is_editable = Column(Boolean, default=True, nullable=False)  # Flipped once a payment settles
    is_walk_in = Column(Boolean, default=False, nullable=False)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    consultation_fee = Column(Integer, default=0, nullable=False)
    total_amount = Column(Integer, default=0, nullable=False)
    # Optimistic-concurrency counter, checked by SQLAlchemy on every UPDATE
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    treatments = relationship(
        "BookingTreatment",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingTreatment.id",
    )
    edit_logs = relationship(
        "BookingEditLog", back_populates="booking", cascade="all, delete-orphan"
    )
    payments = relationship("Payment", back_populates="booking")

    __mapper_args__ = {"version_id_col": version}


class BookingTreatment(Base):
    """One treatment line on a booking; price is frozen when the line is created"""

    __tablename__ = "booking_treatments"
    __table_args__ = (UniqueConstraint("booking_id", "treatment_id", name="uq_booking_treatment"),)

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    treatment_id = Column(Integer, ForeignKey("treatments.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Integer, nullable=False)  # Effective unit price charged
    original_price = Column(Integer, nullable=True)  # Treatment base price at add-time
    promo_applied = Column(JSON, nullable=True)  # Promo snapshot at add-time
    created_at = Column(DateTime, default=utcnow)

    booking = relationship("Booking", back_populates="treatments")
    treatment = relationship("Treatment")

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity


class BookingEditLog(Base):
    __tablename__ = "booking_edit_logs"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    edited_by = Column(String(255), nullable=True)  # Actor id, null for customer self-service
    action = Column(
        String(50), nullable=False
    )  # added_treatment, removed_treatment, updated_treatment, locked_booking, updated_status
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    booking = relationship("Booking", back_populates="edit_logs")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    payment_method = Column(String(50), nullable=False)  # cash, transfer, qris, card...
    payment_gateway = Column(String(20), nullable=False, default="manual")  # manual, midtrans, doku
    status = Column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, paid, failed, expired, refunded
    paid_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    booking = relationship("Booking", back_populates="payments")
