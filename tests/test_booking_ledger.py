import logging
from datetime import datetime

import pytest

from clinic.domain.bookings.ledger import BookingLedger, LedgerResult, validate_quantity
from clinic.domain.exceptions import (
    BookingLocked,
    BookingNotFound,
    ConsultationNotEditable,
    InvalidBooking,
    InvalidDiscount,
    InvalidPrice,
    InvalidQuantity,
    LineItemExists,
    LineItemNotFound,
    TreatmentNotFound,
)
from clinic.models import Booking, BookingEditLog, BookingTreatment

NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def ledger(db):
    return BookingLedger(db)


def line_totals(db, booking_id):
    items = db.query(BookingTreatment).filter(BookingTreatment.booking_id == booking_id).all()
    return sum(item.price * item.quantity for item in items)


def test_open_booking_prices_lines_with_best_promo(db, ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 200000)
    massage = make_treatment("Massage", 100000)
    make_promo("New year", "percentage", 10, is_global=True)
    make_promo("Facial 50k off", "fixed", 50000, treatments=[facial])

    booking = ledger.open_booking(lines=[(facial.id, 2), (massage.id, None)], actor_id="admin-1", now=NOW)

    assert booking.total_amount == 150000 * 2 + 90000
    assert booking.status == "pending"
    assert booking.is_editable
    lines = {item.treatment_id: item for item in booking.treatments}
    assert lines[facial.id].price == 150000
    assert lines[facial.id].original_price == 200000
    assert lines[facial.id].promo_applied["name"] == "Facial 50k off"
    assert lines[massage.id].quantity == 1
    assert lines[massage.id].promo_applied["name"] == "New year"
    assert booking.total_amount == line_totals(db, booking.id)


def test_open_booking_merges_repeated_treatments(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1), (facial.id, 2)], now=NOW)
    assert len(booking.treatments) == 1
    assert booking.treatments[0].quantity == 3
    assert booking.total_amount == 300000


def test_open_booking_rejects_bad_requests(db, ledger, make_treatment):
    facial = make_treatment()
    with pytest.raises(InvalidBooking):
        ledger.open_booking(lines=[], now=NOW)
    with pytest.raises(InvalidBooking):
        ledger.open_booking(booking_type="package", lines=[(facial.id, 1)], now=NOW)
    with pytest.raises(TreatmentNotFound):
        ledger.open_booking(lines=[(facial.id, 1), (9999, 1)], now=NOW)
    with pytest.raises(InvalidQuantity):
        ledger.open_booking(lines=[(facial.id, 0)], now=NOW)

    # Nothing half-written
    assert db.query(Booking).count() == 0
    assert db.query(BookingTreatment).count() == 0


def test_consultation_booking_takes_flat_fee_and_ignores_lines(ledger, make_treatment):
    facial = make_treatment()
    booking = ledger.open_booking(booking_type="consultation", lines=[(facial.id, 1)], now=NOW)
    assert booking.consultation_fee == 150000
    assert booking.total_amount == 150000
    assert booking.treatments == []

    with pytest.raises(ConsultationNotEditable):
        ledger.add_treatment(booking.id, facial.id, 1, now=NOW)
    assert ledger.get_booking(booking.id).total_amount == 150000


def test_add_treatment_defaults_to_one_unit(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    result = ledger.add_treatment(booking.id, peel.id, actor_id="admin-1", now=NOW)

    assert result.total_amount == 180000
    assert result.line_item.quantity == 1
    assert result.line_item.price == 80000
    assert result.audit.action == "added_treatment"
    assert result.audit.previous_total == 100000
    assert result.audit.new_total == 180000


def test_add_treatment_uses_override_price_verbatim(ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    make_promo("Peel 20%", "percentage", 20, treatments=[peel])
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    result = ledger.add_treatment(booking.id, peel.id, 2, unit_price_override=70000, now=NOW)

    assert result.line_item.price == 70000
    assert result.line_item.original_price == 80000
    assert result.line_item.promo_applied is None
    assert result.total_amount == 100000 + 140000


def test_override_price_survives_a_broken_promo(ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)
    make_promo("Misconfigured", "bogus", 10, is_global=True)

    result = ledger.add_treatment(booking.id, peel.id, 1, unit_price_override=900, now=NOW)

    assert isinstance(result, LedgerResult)
    assert result.line_item.price == 900
    assert result.line_item.original_price == 80000
    assert result.line_item.promo_applied is None
    assert result.total_amount == 100000 + 900
    assert result.audit.action == "added_treatment"

    # Without an override the broken promo still surfaces
    ledger.remove_treatment(booking.id, peel.id, now=NOW)
    with pytest.raises(InvalidDiscount):
        ledger.add_treatment(booking.id, peel.id, 1, now=NOW)
    assert ledger.get_booking(booking.id).total_amount == 100000


def test_override_matching_promo_price_keeps_attribution(ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    make_promo("Peel 20%", "percentage", 20, treatments=[peel])
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    result = ledger.add_treatment(booking.id, peel.id, 1, unit_price_override=64000, now=NOW)

    assert result.line_item.price == 64000
    assert result.line_item.promo_applied["name"] == "Peel 20%"


def test_add_then_remove_restores_total(db, ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 200000)
    peel = make_treatment("Peel", 80000)
    make_promo("Peel 10k off", "fixed", 10000, treatments=[peel])
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    ledger.add_treatment(booking.id, peel.id, 3, now=NOW)
    assert ledger.get_booking(booking.id).total_amount == 200000 + 70000 * 3

    result = ledger.remove_treatment(booking.id, peel.id, now=NOW)
    assert result.total_amount == 200000
    assert result.line_item is None
    assert [i.treatment_id for i in ledger.list_line_items(booking.id)] == [facial.id]
    assert ledger.get_booking(booking.id).total_amount == line_totals(db, booking.id)


def test_remove_last_treatment_leaves_empty_booking(ledger, make_treatment):
    facial = make_treatment("Facial", 150000)
    booking = ledger.open_booking(lines=[(facial.id, 2)], now=NOW)
    assert booking.total_amount == 300000

    result = ledger.remove_treatment(booking.id, facial.id, actor_id="admin-1", now=NOW)

    assert result.total_amount == 0
    assert ledger.list_line_items(booking.id) == []
    assert result.audit.action == "removed_treatment"
    assert result.audit.quantity == 2
    assert result.audit.price == 150000


def test_update_quantity_keeps_charged_price(ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    # A promo created afterwards must not reprice the existing line
    make_promo("Late promo", "percentage", 50, is_global=True)
    result = ledger.update_quantity(booking.id, facial.id, 3, now=NOW)

    assert result.total_amount == 300000
    assert result.line_item.price == 100000
    assert result.line_item.quantity == 3
    assert result.audit.previous_quantity == 1
    assert result.audit.quantity == 3


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
def test_invalid_quantities_are_rejected(ledger, make_treatment, quantity):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    with pytest.raises(InvalidQuantity):
        ledger.add_treatment(booking.id, peel.id, quantity, now=NOW)
    with pytest.raises(InvalidQuantity):
        ledger.update_quantity(booking.id, facial.id, quantity, now=NOW)

    assert ledger.get_booking(booking.id).total_amount == 100000


def test_update_quantity_requires_a_value():
    with pytest.raises(InvalidQuantity):
        validate_quantity(None)
    assert validate_quantity(None, allow_default=True) == 1


def test_negative_override_price_is_rejected(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)
    with pytest.raises(InvalidPrice):
        ledger.add_treatment(booking.id, peel.id, 1, unit_price_override=-1, now=NOW)


def test_missing_records_raise_not_found(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    with pytest.raises(BookingNotFound):
        ledger.add_treatment(9999, facial.id, 1, now=NOW)
    with pytest.raises(TreatmentNotFound):
        ledger.add_treatment(booking.id, 9999, 1, now=NOW)
    with pytest.raises(LineItemNotFound):
        ledger.remove_treatment(booking.id, peel.id, now=NOW)
    with pytest.raises(LineItemNotFound):
        ledger.update_quantity(booking.id, peel.id, 2, now=NOW)
    with pytest.raises(BookingNotFound):
        ledger.get_booking(9999)


def test_adding_existing_treatment_is_rejected(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    with pytest.raises(LineItemExists):
        ledger.add_treatment(booking.id, facial.id, 1, now=NOW)

    items = ledger.list_line_items(booking.id)
    assert len(items) == 1
    assert items[0].quantity == 1
    assert ledger.get_booking(booking.id).total_amount == 100000


def test_lock_on_payment_blocks_every_edit(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 2)], now=NOW)

    result = ledger.lock_on_payment(booking.id, actor_id="cashier", now=NOW)
    assert result.audit.action == "locked_booking"

    with pytest.raises(BookingLocked):
        ledger.add_treatment(booking.id, peel.id, 1, now=NOW)
    with pytest.raises(BookingLocked):
        ledger.remove_treatment(booking.id, facial.id, now=NOW)
    with pytest.raises(BookingLocked):
        ledger.update_quantity(booking.id, facial.id, 5, now=NOW)

    locked = ledger.get_booking(booking.id)
    assert not locked.is_editable
    assert locked.total_amount == 200000
    assert [(i.treatment_id, i.quantity) for i in locked.treatments] == [(facial.id, 2)]


def test_lock_on_payment_is_idempotent(db, ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    first = ledger.lock_on_payment(booking.id, now=NOW)
    second = ledger.lock_on_payment(booking.id, now=NOW)

    assert first.audit is not None
    assert second.audit is None
    assert second.total_amount == 100000
    locks = (
        db.query(BookingEditLog)
        .filter(BookingEditLog.booking_id == booking.id, BookingEditLog.action == "locked_booking")
        .count()
    )
    assert locks == 1


def test_settled_payment_locks_booking(ledger, make_treatment, settle_payment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)
    settle_payment(booking.id, 100000)

    assert ledger.is_locked(ledger.get_booking(booking.id))
    with pytest.raises(BookingLocked):
        ledger.update_quantity(booking.id, facial.id, 2, now=NOW)
    assert ledger.get_booking(booking.id).total_amount == 100000


def test_set_status_records_transition_and_skips_repeats(db, ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    result = ledger.set_status(booking.id, "confirmed", actor_id="admin-1", now=NOW)
    assert result.audit.action == "updated_status"
    assert result.audit.previous_status == "pending"
    assert result.audit.status == "confirmed"
    assert result.audit.previous_total == result.audit.new_total == 100000

    again = ledger.set_status(booking.id, "confirmed", now=NOW)
    assert again.audit is None
    assert again.total_amount == 100000

    logs = ledger.list_audit_records(booking.id)
    assert [log.action for log in logs].count("updated_status") == 1
    assert logs[0].details == {
        "status": "confirmed",
        "previous_status": "pending",
        "previous_total": 100000,
        "new_total": 100000,
    }


def test_set_status_works_on_locked_booking(ledger, make_treatment, settle_payment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)
    settle_payment(booking.id, 100000)

    result = ledger.set_status(booking.id, "completed", actor_id="admin-1", now=NOW)

    completed = ledger.get_booking(booking.id)
    assert result.audit is not None
    assert completed.status == "completed"
    assert ledger.is_locked(completed)
    assert completed.total_amount == 100000


def test_set_status_rejects_unknown_status(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    with pytest.raises(InvalidBooking):
        ledger.set_status(booking.id, "archived", now=NOW)
    with pytest.raises(BookingNotFound):
        ledger.set_status(9999, "canceled", now=NOW)
    assert ledger.get_booking(booking.id).status == "pending"


def test_every_edit_leaves_an_audit_record(ledger, make_treatment):
    facial = make_treatment("Facial", 100000)
    peel = make_treatment("Peel", 80000)
    booking = ledger.open_booking(lines=[(facial.id, 1)], actor_id="admin-1", now=NOW)

    ledger.add_treatment(booking.id, peel.id, 1, actor_id="admin-2", now=NOW)
    ledger.update_quantity(booking.id, peel.id, 2, actor_id="admin-2", now=NOW)
    ledger.remove_treatment(booking.id, facial.id, actor_id="admin-3", now=NOW)

    logs = ledger.list_audit_records(booking.id)
    assert [log.action for log in logs] == [
        "removed_treatment",
        "updated_treatment",
        "added_treatment",
        "added_treatment",
    ]
    assert logs[0].edited_by == "admin-3"
    assert logs[0].details["previous_total"] == 260000
    assert logs[0].details["new_total"] == 160000
    assert logs[1].details["previous_quantity"] == 1
    assert logs[-1].edited_by == "admin-1"
    assert logs[-1].details["treatment_name"] == "Facial"


def test_promo_snapshot_survives_promo_changes(db, ledger, make_treatment, make_promo):
    facial = make_treatment("Facial", 200000)
    promo = make_promo("Facial 25%", "percentage", 25, treatments=[facial])
    booking = ledger.open_booking(lines=[(facial.id, 1)], now=NOW)

    promo.discount_value = 50
    promo.name = "Facial 50%"
    db.commit()
    item = ledger.list_line_items(booking.id)[0]
    assert item.price == 150000
    assert item.promo_applied["name"] == "Facial 25%"
    assert item.promo_applied["discount_value"] == 25

    db.delete(promo)
    db.commit()
    item = ledger.list_line_items(booking.id)[0]
    assert item.promo_applied["promo_id"] is not None
    assert item.promo_applied["name"] == "Facial 25%"
    assert ledger.get_booking(booking.id).total_amount == 150000


def test_remove_clamps_total_that_would_go_negative(db, ledger, make_treatment, caplog):
    facial = make_treatment("Facial", 100000)
    booking = ledger.open_booking(lines=[(facial.id, 2)], now=NOW)

    # Corrupt the stored total behind the ledger's back
    stored = db.get(Booking, booking.id)
    stored.total_amount = 50000
    db.commit()

    with caplog.at_level(logging.ERROR, logger="clinic.domain.bookings.ledger"):
        result = ledger.remove_treatment(booking.id, facial.id, now=NOW)

    assert result.total_amount == 0
    assert ledger.get_booking(booking.id).total_amount == 0
    assert "clamping to 0" in caplog.text
