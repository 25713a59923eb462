from __future__ import annotations

from passlib.context import CryptContext

from vtoken.domain.ports.code_hasher import CodeHasherPort
from vtoken.settings import get_settings

# One global context; bcrypt is the only scheme we use.
_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


class BcryptCodeHasher(CodeHasherPort):
    """
    Adaptive one-way hash for verification codes.

    A 6-digit code has only a million candidates, so the digest alone offers
    little protection; the cost factor is what keeps offline guessing slow.
    There is no way back from a digest: a lost code is regenerated, never recovered.
    """

    def __init__(self, *, rounds: int | None = None) -> None:
        if rounds is None:
            rounds = int(get_settings().code_hash_rounds)
        self._rounds = rounds

    def hash(self, code: str) -> str:
        return _ctx.hash(code, rounds=self._rounds)

    def compare(self, code: str, digest: str) -> bool:
        if not code or not digest:
            return False
        try:
            return _ctx.verify(code, digest)
        except (ValueError, TypeError):
            # unrecognised or truncated digest
            return False
