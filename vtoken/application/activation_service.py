from __future__ import annotations

import logging

from vtoken.domain.errors import UserNotFound
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort

logger = logging.getLogger(__name__)


class ActivationService:
    """
    Activates a user and every inactive store they own.

    Always runs inside the caller's transaction, next to the statement that
    consumes the token; it never commits on its own. Re-running it is a no-op.
    """

    async def activate(self, tx: UnitOfWorkPort, user_id: int) -> int:
        if not await tx.users.set_active(user_id):
            raise UserNotFound(f"user {user_id} does not exist")
        stores = await tx.stores.activate_all_inactive_for_owner(user_id)
        logger.info(
            "subject activated",
            extra={"user_id": user_id, "stores_activated": stores},
        )
        return stores
