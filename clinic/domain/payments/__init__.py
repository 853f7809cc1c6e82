"""Payment domain - payment records and the settlement signal"""

from .router import router

__all__ = ["router"]
