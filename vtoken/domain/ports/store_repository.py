from typing import Protocol


class StoreRepositoryPort(Protocol):
    async def activate_all_inactive_for_owner(self, user_id: int) -> int:
        """Activate every inactive store owned by user_id. Return the count."""
