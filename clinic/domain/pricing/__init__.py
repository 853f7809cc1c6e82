"""Pricing domain - treatments, promos and best-price resolution"""

from .resolver import PromoResolver, resolve_best_price
from .router import router

__all__ = ["PromoResolver", "resolve_best_price", "router"]
