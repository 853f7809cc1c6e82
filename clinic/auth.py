import logging
from typing import Optional

from fastapi import Header

logger = logging.getLogger(__name__)


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Identity of the staff member (or customer) making the request.

    Sessions are handled by the gateway in front of this service, which
    forwards the authenticated user id in ``X-Actor-Id``. The value is only
    used to attribute booking audit records.
    """
    if x_actor_id:
        logger.debug(f"👤 Request attributed to actor {x_actor_id}")
    return x_actor_id or None
