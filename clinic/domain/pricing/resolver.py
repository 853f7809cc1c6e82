"""Promo resolver - picks the lowest price a treatment can be sold at right now.

Every place that needs a treatment price (booking creation, walk-in, admin
edit-treatments, treatment listings) goes through :func:`resolve_best_price`.
The functions here are pure: they read the treatment and promo objects they
are given and never touch the database.

Promo objects only need the attributes of :class:`clinic.models.Promo`:
``id``, ``name``, ``discount_type``, ``discount_value``, ``start_date``,
``end_date``, ``is_active``, ``is_global`` and ``applicable_treatment_ids``.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ...utils.clock import utcnow
from ..exceptions import InvalidDiscount, InvalidPrice
from .schemas import EffectivePrice, PromoSnapshot

logger = logging.getLogger(__name__)

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = (PERCENTAGE, FIXED)


def is_currently_active(promo, now: datetime) -> bool:
    """True when the promo is switched on and ``now`` falls inside its window"""
    if not promo.is_active:
        return False
    if promo.start_date is not None and promo.start_date > now:
        return False
    if promo.end_date is not None and promo.end_date < now:
        return False
    return True


def applies_to(promo, treatment_id) -> bool:
    """True when the promo is global or lists the treatment"""
    if promo.is_global:
        return True
    return treatment_id in (promo.applicable_treatment_ids or ())


def _round_unit(amount: Decimal) -> int:
    # Half-up to the whole currency unit; there are no sub-units
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_discounted_price(base_price: int, promo) -> int:
    """Price of one unit after applying ``promo``, clamped to ``[0, base_price]``.

    Raises InvalidDiscount when the promo has no usable discount configuration.
    """
    if promo.discount_type not in DISCOUNT_TYPES:
        raise InvalidDiscount(
            f"Promo {getattr(promo, 'name', promo)!r} has unsupported discount_type "
            f"{promo.discount_type!r}"
        )
    if promo.discount_value is None or promo.discount_value < 0:
        raise InvalidDiscount(
            f"Promo {getattr(promo, 'name', promo)!r} has invalid discount_value "
            f"{promo.discount_value!r}"
        )

    base = Decimal(base_price)
    value = Decimal(str(promo.discount_value))

    if promo.discount_type == PERCENTAGE:
        price = _round_unit(base * (Decimal(100) - value) / Decimal(100))
    else:
        price = _round_unit(base - value)

    return min(base_price, max(0, price))


def _snapshot(promo) -> PromoSnapshot:
    return PromoSnapshot(
        promo_id=getattr(promo, "id", None),
        name=promo.name,
        discount_type=promo.discount_type,
        discount_value=float(promo.discount_value),
        is_global=bool(promo.is_global),
    )


def resolve_best_price(
    treatment, candidate_promos: Iterable, now: Optional[datetime] = None
) -> EffectivePrice:
    """Return the lowest effective unit price for ``treatment``.

    Inactive or out-of-window promos are discarded even if the caller already
    filtered them. When several promos reach the same lowest price, a
    treatment-specific promo wins over a global one, then the lowest promo id.
    A promo is only attributed when it lowers the price below ``base_price``.
    """
    base_price = treatment.base_price
    if base_price is None or base_price < 0:
        raise InvalidPrice(f"Treatment {treatment.id} has invalid base_price {base_price!r}")

    if now is None:
        now = utcnow()

    best_key = None
    best_promo = None
    best_price = base_price

    for position, promo in enumerate(candidate_promos):
        if not is_currently_active(promo, now):
            continue
        if not applies_to(promo, treatment.id):
            continue

        price = compute_discounted_price(base_price, promo)
        promo_id = getattr(promo, "id", None)
        key = (
            price,
            1 if promo.is_global else 0,
            promo_id if promo_id is not None else float("inf"),
            position,
        )
        if best_key is None or key < best_key:
            best_key = key
            best_promo = promo
            best_price = price

    if best_promo is None or best_price >= base_price:
        return EffectivePrice(treatment_id=treatment.id, base_price=base_price, final_price=base_price)

    logger.debug(
        f"💰 Treatment {treatment.id}: {base_price} -> {best_price} via promo {best_promo.name!r}"
    )
    return EffectivePrice(
        treatment_id=treatment.id,
        base_price=base_price,
        final_price=best_price,
        applied_promo=_snapshot(best_promo),
    )


class PromoResolver:
    """Callable wrapper so services can take the resolver as a collaborator"""

    def resolve_best_price(
        self, treatment, candidate_promos: Iterable, now: Optional[datetime] = None
    ) -> EffectivePrice:
        return resolve_best_price(treatment, candidate_promos, now)
