from typing import Protocol


class IssueThrottlePort(Protocol):
    async def acquire(self, subject: str, channel: str, window_seconds: int) -> int:
        """
        Claim the issuance slot for (subject, channel).
        Return 0 when granted, else the seconds left until the next slot.
        Raises TransientError when the backing store is unreachable.
        """

    async def release(self, subject: str, channel: str) -> None:
        """Free the slot (issuance failed before anything was persisted)."""
