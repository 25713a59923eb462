from __future__ import annotations

from typing import Optional, Dict
import httpx

from vtoken.domain.ports.text_message_port import TextMessagePort


class HttpTextMessageAdapter(TextMessagePort):
    """
    Posts `{"phone", "message"}` to a WhatsApp/SMS gateway.
    Any non-2xx answer or transport failure raises RuntimeError so the outbox
    dispatcher can schedule a retry.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        send_path: str = "/messages",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._send_path = send_path if send_path.startswith("/") else f"/{send_path}"
        self._owns_client: bool = client is None
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(timeout=timeout)

    async def send_text(
        self,
        *,
        phone: str,
        message: str,
        idempotency_key: str | None = None,
    ) -> None:
        headers: Dict[str, str] = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        url = f"{self._base_url}{self._send_path}"
        payload = {"phone": phone, "message": message}

        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise RuntimeError(f"text gateway HTTP error: {e}") from e
        if not (200 <= resp.status_code < 300):
            text = resp.text[:200]
            raise RuntimeError(f"text gateway responded {resp.status_code}: {text}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
