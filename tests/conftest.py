import os
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite:///./clinic-test.db")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from clinic.database import Base, build_engine, get_db  # noqa: E402
from clinic.main import app  # noqa: E402
from clinic.models import Payment, Promo, Treatment  # noqa: E402

NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_treatment(db):
    def _make(name="Facial", base_price=200000, duration_minutes=60, is_active=True):
        treatment = Treatment(
            name=name,
            base_price=base_price,
            duration_minutes=duration_minutes,
            is_active=is_active,
        )
        db.add(treatment)
        db.commit()
        db.refresh(treatment)
        return treatment

    return _make


@pytest.fixture
def make_promo(db):
    def _make(
        name="Promo",
        discount_type="percentage",
        discount_value=10,
        treatments=(),
        is_global=False,
        is_active=True,
        start_date=None,
        end_date=None,
    ):
        promo = Promo(
            name=name,
            discount_type=discount_type,
            discount_value=discount_value,
            is_global=is_global,
            is_active=is_active,
            start_date=start_date,
            end_date=end_date,
        )
        promo.treatments = list(treatments)
        db.add(promo)
        db.commit()
        db.refresh(promo)
        return promo

    return _make


@pytest.fixture
def settle_payment(db):
    def _settle(booking_id, amount=0):
        payment = Payment(
            booking_id=booking_id,
            amount=amount,
            payment_method="cash",
            payment_gateway="manual",
            status="paid",
            paid_at=NOW,
        )
        db.add(payment)
        db.commit()
        return payment

    return _settle
