import logging
import sys
from collections import deque

from fastapi import FastAPI, Request, Response, status
from pydantic import BaseModel, Field

logging.basicConfig(stream=sys.stdout, level=logging.INFO, format="%(asctime)sZ %(levelname)s %(message)s")

app = FastAPI(title="Text Gateway Mock", version="1.0.0")

# last messages, readable through GET /messages during local testing
_inbox: deque = deque(maxlen=50)


class SendText(BaseModel):
    phone: str = Field(..., pattern=r"^\+\d{6,15}$")
    message: str


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/messages")
def messages() -> list:
    return list(_inbox)


@app.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def send(payload: SendText, request: Request) -> Response:
    idem = request.headers.get("Idempotency-Key")
    if idem and any(m["idempotency_key"] == idem for m in _inbox):
        logging.info("TEXT-MOCK duplicate idem=%s ignored", idem)
        return Response(status_code=status.HTTP_202_ACCEPTED)
    _inbox.append({"phone": payload.phone, "message": payload.message, "idempotency_key": idem})
    logging.info("TEXT-MOCK send to=%s idem=%s chars=%d", payload.phone, idem, len(payload.message))
    return Response(status_code=status.HTTP_202_ACCEPTED)
