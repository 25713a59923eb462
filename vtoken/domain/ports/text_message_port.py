from __future__ import annotations

from typing import Protocol

TOPIC_SEND_TEXT = "verification.send_text"


class TextMessagePort(Protocol):
    async def send_text(
        self,
        *,
        phone: str,
        message: str,
        idempotency_key: str | None = None,
    ) -> None:
        """Send a text message (WhatsApp/SMS gateway). Raises on failure."""
